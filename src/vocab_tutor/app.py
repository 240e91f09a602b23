"""Interactive CLI application."""
import logging
import os
import sqlite3
from datetime import date, timedelta
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from vocab_tutor.analytics import (
    get_daily_activity_by_book, get_practice_metrics, get_test_results,
    get_user_activity_summary,
)
from vocab_tutor.config import settings
from vocab_tutor.content import count_words, get_books, get_lesson, get_lessons, get_words_by_lesson
from vocab_tutor.db import init_db
from vocab_tutor.models import Lesson, Mode
from vocab_tutor.practice import PracticeStateMachine, State
from vocab_tutor.progress import ProgressStore
from vocab_tutor.seed import is_seeded, seed_all

console = Console()
logger = logging.getLogger(__name__)


def setup_logging() -> None:
    root = logging.getLogger(settings.PROJECT_NAME)
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    if root.handlers:
        return
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    log_path = os.path.join(settings.LOG_DIR, settings.LOG_FILE)
    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )
    root.addHandler(file_handler)


def show_welcome():
    console.print(Panel(
        "[bold]Arabic Vocabulary Tutor[/bold]\n[dim]Learn, practice and test your words[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("lesson", "Open a vocabulary lesson"),
        ("progress", "Lesson completion"),
        ("activity", "Your activity dashboard"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def choose_lesson(db_path: str) -> Lesson | None:
    ids = []
    for book in get_books(db_path):
        lessons = [lesson for lesson in get_lessons(db_path, book.id) if lesson.type == "vocabulary"]
        if not lessons:
            continue
        console.print(f"\n[bold]{book.title}[/bold]")
        for lesson in lessons:
            ids.append(str(lesson.id))
            console.print(f"  [cyan]{lesson.id}[/cyan]) {lesson.title}")
    if not ids:
        console.print("[yellow]No vocabulary lessons available.[/yellow]")
        return None
    lesson_id = IntPrompt.ask("Select lesson", choices=ids)
    return get_lesson(db_path, lesson_id)


def open_lesson(db_path: str, user_id: str, lesson: Lesson, scheduler=None) -> PracticeStateMachine | None:
    """Load words and progress for a lesson, offering a retry when loading fails."""
    store = ProgressStore(db_path)
    while True:
        try:
            words = get_words_by_lesson(db_path, lesson.id)
            progress = store.get_progress(user_id, lesson.id)
        except sqlite3.Error:
            logger.exception("Failed to load lesson %s", lesson.id)
            console.print("[red]Could not load this lesson.[/red]")
            if not Confirm.ask("Try again?", default=True):
                return None
            continue
        return PracticeStateMachine(
            user_id, words, store, initial_progress=progress, scheduler=scheduler,
        )


def _word_header(machine: PracticeStateMachine) -> str:
    header = f"Word {machine.position + 1} of {len(machine.words)}"
    word = machine.current_word
    progress = machine.progress_for(word.id) if word else None
    if progress:
        header += f"  [dim]Correct: {progress.correct_count} | Incorrect: {progress.incorrect_count}[/dim]"
    return header


def run_learn(machine: PracticeStateMachine) -> None:
    machine.switch_mode(Mode.LEARN)
    while True:
        word = machine.current_word
        if word is None:
            console.print("[yellow]No vocabulary words available.[/yellow]")
            return
        console.print(Panel(
            f"[bold]{word.arabic}[/bold]\n\n{word.english}",
            title=_word_header(machine), border_style="cyan",
        ))
        choice = Prompt.ask("[dim]n=next, p=previous, m=menu[/dim]", choices=["n", "p", "m"], default="n")
        if choice == "m":
            return
        if choice == "n":
            machine.next()
        else:
            machine.previous()


def show_practice_summary(machine: PracticeStateMachine) -> list:
    """Print the three summary groups; returns the words in display order."""
    summary = machine.practice_summary()
    console.print(Panel(
        f"Correct: [green]{len(summary.correct)}[/green]  "
        f"Incorrect: [red]{len(summary.incorrect)}[/red]  "
        f"Not practiced: [yellow]{len(summary.unpracticed)}[/yellow]  "
        f"Accuracy: [bold]{summary.accuracy}%[/bold]",
        title="Practice Summary", border_style="blue",
    ))
    listed = []
    for label, color, words in (
        ("Incorrect", "red", summary.incorrect),
        ("Correct", "green", summary.correct),
        ("Not yet practiced", "yellow", summary.unpracticed),
    ):
        if not words:
            continue
        console.print(f"\n[bold {color}]{label}[/bold {color}]")
        for word in words:
            listed.append(word)
            console.print(f"  [cyan]{len(listed)}[/cyan]) {word.arabic} — {word.english}")
    return listed


def run_practice(machine: PracticeStateMachine) -> None:
    machine.switch_mode(Mode.PRACTICE)
    while True:
        if machine.current_word is None:
            console.print("[yellow]No vocabulary words available.[/yellow]")
            return
        if machine.state is State.PRACTICE_SUMMARY:
            listed = show_practice_summary(machine)
            choices = [str(i) for i in range(1, len(listed) + 1)] + ["c", "r", "m"]
            choice = Prompt.ask(
                "[dim]number=jump to word, c=continue, r=reset, m=menu[/dim]", choices=choices, default="m"
            )
            if choice == "m":
                return
            if choice == "c":
                machine.resume_practice()
            elif choice == "r":
                machine.reset_practice()
            else:
                machine.jump_to_word(listed[int(choice) - 1].id)
            continue

        word = machine.current_word
        body = f"[bold]{word.arabic}[/bold]"
        if machine.is_flipped:
            body += f"\n\n{word.english}"
        console.print(Panel(body, title=_word_header(machine), border_style="cyan"))
        choice = Prompt.ask(
            "[dim]f=flip, c=correct, x=incorrect, n=next, p=previous, s=summary, m=menu[/dim]",
            choices=["f", "c", "x", "n", "p", "s", "m"], default="f",
        )
        if choice == "m":
            return
        actions = {
            "f": machine.flip,
            "c": lambda: machine.answer_practice(True),
            "x": lambda: machine.answer_practice(False),
            "n": machine.next,
            "p": machine.previous,
            "s": machine.show_summary,
        }
        actions[choice]()


def show_test_results(machine: PracticeStateMachine) -> None:
    score = machine.test_score()
    console.print(Panel(
        f"[bold]{score.correct} / {score.answered}[/bold]  ({score.percentage}% correct, "
        f"{score.total - score.answered} skipped)",
        title="Test Results", border_style="blue",
    ))
    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Arabic")
    table.add_column("Your answer")
    table.add_column("Correct answer")
    for i, (word, question) in enumerate(machine.test_questions(), 1):
        color = "green" if question.is_correct else "red"
        table.add_row(
            str(i), word.arabic,
            f"[{color}]{question.selected_answer or '—'}[/{color}]",
            word.english,
        )
    console.print(table)


def run_test(machine: PracticeStateMachine) -> None:
    machine.switch_mode(Mode.TEST)
    while True:
        if machine.state is State.TEST_SUBMITTED:
            show_test_results(machine)
            choice = Prompt.ask("[dim]r=retake, m=menu[/dim]", choices=["r", "m"], default="m")
            if choice == "m":
                return
            machine.retake()
            continue

        word = machine.current_word
        question = machine.current_question
        if word is None or question is None:
            console.print("[yellow]No vocabulary words available.[/yellow]")
            return
        console.print(f"\n[bold]Q{machine.position + 1}/{len(machine.words)}.[/bold] {word.arabic}\n")
        for i, option in enumerate(question.options, 1):
            marker = ""
            if question.selected_answer == option:
                marker = " [green]✓[/green]" if question.is_correct else " [red]✗[/red]"
            console.print(f"  [cyan]{i})[/cyan] {option}{marker}")
        choices = ["n", "p", "m"]
        if not question.answered:
            choices = [str(i) for i in range(1, len(question.options) + 1)] + choices
        if machine.all_answered:
            choices.append("v")
        choice = Prompt.ask("\nYour answer [dim](n/p=navigate, v=results, m=menu)[/dim]", choices=choices)
        if choice == "m":
            return
        if choice == "n":
            machine.next()
        elif choice == "p":
            machine.previous()
        elif choice == "v":
            machine.view_results()
        else:
            is_correct = machine.select_answer(question.options[int(choice) - 1])
            if is_correct:
                console.print("[green]Correct![/green]")
            elif is_correct is False:
                console.print(f"[red]Incorrect.[/red] Answer: [green]{word.english}[/green]")
            with console.status("[dim]Next question...[/dim]"):
                machine.wait_for_advance(timeout=settings.AUTO_ADVANCE_SECONDS + 1)


def cmd_lesson(db_path: str, user_id: str) -> None:
    lesson = choose_lesson(db_path)
    if lesson is None:
        return
    machine = open_lesson(db_path, user_id, lesson)
    if machine is None:
        return
    with machine:
        while True:
            console.print(f"\n[bold]{lesson.title}[/bold]  [dim]learn / practice / test / back[/dim]")
            choice = Prompt.ask("Mode", choices=["learn", "practice", "test", "back"], default="learn")
            if choice == "back":
                return
            {"learn": run_learn, "practice": run_practice, "test": run_test}[choice](machine)


def cmd_progress(db_path: str, user_id: str) -> None:
    table = Table(title="Lesson Progress")
    table.add_column("Lesson", style="cyan")
    table.add_column("Seen", justify="right")
    table.add_column("Mastered", justify="right")
    table.add_column("Complete")
    store = ProgressStore(db_path)
    for lesson in get_lessons(db_path):
        progress = store.lesson_progress(user_id, lesson.id)
        filled = progress.completion_percentage // 5
        color = "green" if progress.completion_percentage == 100 else "cyan"
        table.add_row(
            lesson.title,
            f"{progress.words_seen}/{progress.total_words}",
            f"{progress.words_mastered}/{progress.total_words}",
            f"[{color}]{'█' * filled}{'░' * (20 - filled)}[/{color}] {progress.completion_percentage}%",
        )
    console.print(table)


def cmd_activity(db_path: str, user_id: str, today: date | None = None) -> None:
    today = today or date.today()
    start = today - timedelta(days=settings.DASHBOARD_RANGE_DAYS)
    summary = get_user_activity_summary(db_path, user_id, start, today, today=today)
    metrics = get_practice_metrics(db_path, user_id, start, today)
    tests = get_test_results(db_path, user_id, start, today)
    books = get_daily_activity_by_book(db_path, user_id, start, today)

    console.print(Panel(
        f"Words reviewed: [bold]{summary.total_words_reviewed}[/bold]  |  "
        f"Practice sessions: [bold]{summary.total_practice_sessions}[/bold]  |  "
        f"Test sessions: [bold]{summary.total_test_sessions}[/bold]  |  "
        f"Accuracy: [bold]{summary.average_accuracy}%[/bold]\n"
        f"Current streak: [bold]{summary.current_streak}[/bold] days  |  "
        f"Longest streak: [bold]{summary.longest_streak}[/bold] days  |  "
        f"Last active: {summary.last_activity_date or 'never'}",
        title=f"Your Activity (last {settings.DASHBOARD_RANGE_DAYS} days)", border_style="blue",
    ))
    console.print(
        f"\n  Practiced: [bold]{metrics.total_words_practiced}[/bold]  |  "
        f"Seen: [bold]{metrics.words_seen}[/bold]  |  Not seen: [bold]{metrics.words_not_seen}[/bold]  |  "
        f"Correct: [green]{metrics.total_correct}[/green]  Incorrect: [red]{metrics.total_incorrect}[/red]"
    )

    if metrics.by_lesson:
        table = Table(title="Accuracy by Lesson")
        table.add_column("Lesson", style="cyan")
        table.add_column("Words", justify="right")
        table.add_column("Accuracy", justify="right")
        for lm in metrics.by_lesson:
            table.add_row(lm.lesson_title or "—", str(lm.words_practiced), f"{lm.accuracy_rate}%")
        console.print(table)

    if tests:
        table = Table(title="Test Sessions")
        table.add_column("Date")
        table.add_column("Lesson", style="cyan")
        table.add_column("Score", justify="right")
        table.add_column("Words", justify="right")
        for result in tests:
            table.add_row(
                result.date, result.lesson_title or "—", f"{result.score}%",
                f"{result.correct_words}/{result.total_words}",
            )
        console.print(table)

    for book in books.values():
        console.print(
            f"\n  [bold]{book.book_title}[/bold] ({count_words(db_path, book.book_id)} words): "
            f"{book.summary.total_words_reviewed} reviewed, "
            f"{book.summary.total_practice_sessions} practice / {book.summary.total_test_sessions} test sessions, "
            f"{book.summary.average_accuracy}% accuracy"
        )


def main():
    setup_logging()
    db_path = settings.DB_PATH
    user_id = settings.DEFAULT_USER
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path)
    if first_run:
        console.print("[green]Ready![/green]\n")

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="lesson").strip().lower()
        try:
            if choice == "lesson":
                cmd_lesson(db_path, user_id)
            elif choice == "progress":
                cmd_progress(db_path, user_id)
            elif choice == "activity":
                cmd_activity(db_path, user_id)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]مع السلامة! See you next time.[/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.exception("Command %s failed", choice)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
