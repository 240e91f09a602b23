"""Activity dashboards computed from stored progress rows.

Progress rows carry cumulative counters and a single ``last_reviewed_at``
timestamp, with no session markers. Sessions are therefore inferred: any
activity by a user on a day counts as one practice session, and a day on
which the user reviewed at least ``TEST_SESSION_MIN_WORDS`` distinct words
also counts as a test session. This is an approximation of real session
boundaries.

Every progress write moves ``last_reviewed_at``, including the "seen" write
made when a word is only browsed in Learn mode. Browsing five words of a
lesson in one day therefore shows up as an inferred test with a score of 0.

Rows whose review timestamp cannot be parsed are skipped with a warning.

All functions are read-only. The ``get_*`` wrappers never raise on
database errors; they log and return an empty or zeroed result.
"""
import logging
import sqlite3
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from vocab_tutor.content import count_words, get_word_lessons
from vocab_tutor.db import get_connection
from vocab_tutor.models import (
    BookActivity, BookSummary, DailyActivity, LessonMetrics, PracticeMetrics,
    TestResult, UserActivitySummary,
)

logger = logging.getLogger(__name__)

TEST_SESSION_MIN_WORDS = 5


@dataclass
class ReviewRow:
    user_id: str
    word_id: int
    seen: bool
    correct_count: int
    incorrect_count: int
    reviewed_on: date
    lesson_id: Optional[int] = None
    lesson_title: Optional[str] = None
    book_id: Optional[int] = None
    book_title: Optional[str] = None


def accuracy(correct: int, incorrect: int) -> float:
    total = correct + incorrect
    if total == 0:
        return 0.0
    return round(correct / total * 100, 1)


# -- pure aggregations -------------------------------------------------------


def daily_activity(rows: Iterable[ReviewRow]) -> list[DailyActivity]:
    """One record per calendar day with activity, oldest first."""
    words_by_day: dict[date, dict[str, set]] = defaultdict(lambda: defaultdict(set))
    for row in rows:
        words_by_day[row.reviewed_on][row.user_id].add(row.word_id)
    result = []
    for day in sorted(words_by_day):
        users = words_by_day[day]
        result.append(DailyActivity(
            date=day.isoformat(),
            words_reviewed=len(set().union(*users.values())),
            practice_sessions=len(users),
            test_sessions=sum(1 for words in users.values() if len(words) >= TEST_SESSION_MIN_WORDS),
            active_users=len(users),
        ))
    return result


def practice_metrics(
    rows: Iterable[ReviewRow], total_words: int = 0, seen_words: set[int] | None = None
) -> PracticeMetrics:
    """Answer counters over ``rows``.

    ``words_seen`` and ``words_not_seen`` describe coverage of the whole
    vocabulary; pass ``seen_words`` when ``rows`` are date-filtered so a word
    seen before the range still counts as seen.
    """
    rows = list(rows)
    total_correct = sum(r.correct_count for r in rows)
    total_incorrect = sum(r.incorrect_count for r in rows)
    if seen_words is None:
        seen_words = {r.word_id for r in rows if r.seen}

    lessons: dict[int, dict] = {}
    for r in rows:
        if r.lesson_id is None:
            continue
        entry = lessons.setdefault(
            r.lesson_id, {"title": r.lesson_title, "correct": 0, "incorrect": 0, "words": set()}
        )
        entry["correct"] += r.correct_count
        entry["incorrect"] += r.incorrect_count
        if r.correct_count + r.incorrect_count > 0:
            entry["words"].add(r.word_id)

    by_lesson = [
        LessonMetrics(
            lesson_id=lesson_id,
            lesson_title=entry["title"],
            total_correct=entry["correct"],
            total_incorrect=entry["incorrect"],
            words_practiced=len(entry["words"]),
            accuracy_rate=accuracy(entry["correct"], entry["incorrect"]),
        )
        for lesson_id, entry in sorted(lessons.items())
    ]
    return PracticeMetrics(
        total_words_practiced=sum(1 for r in rows if r.correct_count + r.incorrect_count > 0),
        accuracy_rate=accuracy(total_correct, total_incorrect),
        words_seen=len(seen_words),
        words_not_seen=max(total_words - len(seen_words), 0),
        total_correct=total_correct,
        total_incorrect=total_incorrect,
        by_lesson=by_lesson,
    )


def infer_test_results(rows: Iterable[ReviewRow]) -> list[TestResult]:
    """Reconstruct test sessions from (user, day, lesson) groups of at least five words."""
    groups: dict[tuple, list[ReviewRow]] = defaultdict(list)
    for r in rows:
        groups[(r.reviewed_on, r.user_id, r.lesson_id)].append(r)

    results = []
    for key in sorted(groups, key=lambda k: (k[0], k[1], k[2] or 0)):
        day, _user, lesson_id = key
        group = groups[key]
        words = {r.word_id for r in group}
        if len(words) < TEST_SESSION_MIN_WORDS:
            continue
        correct = sum(r.correct_count for r in group)
        incorrect = sum(r.incorrect_count for r in group)
        results.append(TestResult(
            date=day.isoformat(),
            score=accuracy(correct, incorrect),
            total_words=len(words),
            correct_words=sum(
                1 for r in group if r.correct_count > 0 and r.correct_count >= r.incorrect_count
            ),
            lesson_id=lesson_id,
            lesson_title=group[0].lesson_title,
        ))
    return results


def calculate_streaks(activity_dates: Iterable[date], today: date) -> tuple[int, int]:
    """Return ``(current_streak, longest_streak)`` in consecutive calendar days.

    The current streak only counts when there was activity ``today``.
    """
    days = sorted(set(activity_dates), reverse=True)
    if not days:
        return 0, 0

    longest = run = 1
    for later, earlier in zip(days, days[1:]):
        if (later - earlier).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    current = 0
    if days[0] == today:
        current = 1
        for later, earlier in zip(days, days[1:]):
            if (later - earlier).days != 1:
                break
            current += 1
    return current, longest


def _totals(rows: list[ReviewRow]) -> dict:
    daily = daily_activity(rows)
    return {
        "total_words_reviewed": sum(d.words_reviewed for d in daily),
        "total_practice_sessions": sum(d.practice_sessions for d in daily),
        "total_test_sessions": sum(d.test_sessions for d in daily),
        "average_accuracy": accuracy(
            sum(r.correct_count for r in rows), sum(r.incorrect_count for r in rows)
        ),
    }


def activity_summary(
    rows: Iterable[ReviewRow], history_dates: Iterable[date], today: date
) -> UserActivitySummary:
    """Totals over ``rows``; streaks and last activity over the full ``history_dates``."""
    history = set(history_dates)
    current, longest = calculate_streaks(history, today)
    return UserActivitySummary(
        **_totals(list(rows)),
        current_streak=current,
        longest_streak=longest,
        last_activity_date=max(history).isoformat() if history else None,
    )


def activity_by_book(rows: Iterable[ReviewRow]) -> dict[int, BookActivity]:
    books: dict[int, list[ReviewRow]] = defaultdict(list)
    for r in rows:
        if r.book_id is not None:
            books[r.book_id].append(r)
    return {
        book_id: BookActivity(
            book_id=book_id,
            book_title=book_rows[0].book_title,
            daily_activity=daily_activity(book_rows),
            summary=BookSummary(**_totals(book_rows)),
        )
        for book_id, book_rows in sorted(books.items())
    }


# -- database-backed queries -------------------------------------------------


def load_review_rows(
    db_path: str,
    user_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[ReviewRow]:
    """Reviewed progress rows joined with their lesson and book, dates inclusive."""
    sql = "SELECT * FROM user_progress WHERE last_reviewed_at IS NOT NULL"
    params: list = []
    if user_id is not None:
        sql += " AND user_id = ?"
        params.append(user_id)
    if start_date is not None:
        sql += " AND substr(last_reviewed_at, 1, 10) >= ?"
        params.append(start_date.isoformat())
    if end_date is not None:
        sql += " AND substr(last_reviewed_at, 1, 10) <= ?"
        params.append(end_date.isoformat())
    conn = get_connection(db_path)
    rows = conn.execute(sql, params).fetchall()
    conn.close()

    word_lessons = get_word_lessons(db_path)
    result = []
    for row in rows:
        try:
            reviewed_on = datetime.fromisoformat(row["last_reviewed_at"]).date()
        except (TypeError, ValueError):
            logger.warning(
                "Skipping progress row %s with bad review timestamp %r", row["id"], row["last_reviewed_at"]
            )
            continue
        lesson = word_lessons.get(row["word_id"], {})
        result.append(ReviewRow(
            user_id=row["user_id"],
            word_id=row["word_id"],
            seen=bool(row["seen"]),
            correct_count=row["correct_count"],
            incorrect_count=row["incorrect_count"],
            reviewed_on=reviewed_on,
            lesson_id=lesson.get("lesson_id"),
            lesson_title=lesson.get("lesson_title"),
            book_id=lesson.get("book_id"),
            book_title=lesson.get("book_title"),
        ))
    return result


def seen_word_ids(db_path: str, user_id: str | None = None) -> set[int]:
    """Words ever marked seen, regardless of when."""
    sql = "SELECT DISTINCT word_id FROM user_progress WHERE seen = 1"
    params: list = []
    if user_id is not None:
        sql += " AND user_id = ?"
        params.append(user_id)
    conn = get_connection(db_path)
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return {row["word_id"] for row in rows}


def get_daily_activity(db_path: str, user_id: str | None = None,
                       start_date: date | None = None, end_date: date | None = None) -> list[DailyActivity]:
    try:
        return daily_activity(load_review_rows(db_path, user_id, start_date, end_date))
    except sqlite3.Error:
        logger.exception("Daily activity query failed")
        return []


def get_practice_metrics(db_path: str, user_id: str | None = None,
                         start_date: date | None = None, end_date: date | None = None) -> PracticeMetrics:
    try:
        rows = load_review_rows(db_path, user_id, start_date, end_date)
        return practice_metrics(
            rows, total_words=count_words(db_path), seen_words=seen_word_ids(db_path, user_id)
        )
    except sqlite3.Error:
        logger.exception("Practice metrics query failed")
        return PracticeMetrics()


def get_test_results(db_path: str, user_id: str | None = None,
                     start_date: date | None = None, end_date: date | None = None) -> list[TestResult]:
    try:
        return infer_test_results(load_review_rows(db_path, user_id, start_date, end_date))
    except sqlite3.Error:
        logger.exception("Test results query failed")
        return []


def get_user_activity_summary(db_path: str, user_id: str | None = None,
                              start_date: date | None = None, end_date: date | None = None,
                              today: date | None = None) -> UserActivitySummary:
    today = today or date.today()
    try:
        rows = load_review_rows(db_path, user_id, start_date, end_date)
        history = {r.reviewed_on for r in load_review_rows(db_path, user_id)}
        return activity_summary(rows, history, today)
    except sqlite3.Error:
        logger.exception("Activity summary query failed")
        return UserActivitySummary()


def get_daily_activity_by_book(db_path: str, user_id: str | None = None,
                               start_date: date | None = None, end_date: date | None = None) -> dict[int, BookActivity]:
    try:
        return activity_by_book(load_review_rows(db_path, user_id, start_date, end_date))
    except sqlite3.Error:
        logger.exception("Per-book activity query failed")
        return {}
