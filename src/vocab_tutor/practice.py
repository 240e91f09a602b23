"""Learn / Practice / Test state machine for one lesson's word list.

Answers update the in-memory session first and are then written to the
progress store. A failed write is logged and otherwise ignored, so the
learner always gets immediate feedback even if the stored counters end
up lower than the number of answers given.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from functools import partial

from vocab_tutor.choices import build_test_options
from vocab_tutor.config import settings
from vocab_tutor.models import Mode, TestQuestion, UserProgress, VocabularyWord
from vocab_tutor.progress import ProgressWriteError
from vocab_tutor.sequencer import SessionSequencer
from vocab_tutor.timers import AutoAdvanceTimer

logger = logging.getLogger(__name__)


class State(str, Enum):
    LEARN = "learn"
    PRACTICE_CARD = "practice-card"
    PRACTICE_SUMMARY = "practice-summary"
    TEST_QUESTION = "test-question"
    TEST_SUBMITTED = "test-submitted"


@dataclass
class PracticeSummary:
    correct: list[VocabularyWord]
    incorrect: list[VocabularyWord]
    unpracticed: list[VocabularyWord]

    @property
    def accuracy(self) -> float:
        answered = len(self.correct) + len(self.incorrect)
        if answered == 0:
            return 0.0
        return round(len(self.correct) / answered * 100, 1)


@dataclass
class TestScore:
    __test__ = False

    correct: int
    answered: int
    total: int

    @property
    def percentage(self) -> int:
        """Share of answered questions that were correct, as a whole percent."""
        if self.answered == 0:
            return 0
        return round(self.correct / self.answered * 100)


def classify_history(progress: UserProgress) -> bool | None:
    """Majority vote over stored counters; ``None`` if never answered."""
    if progress.total_reviews == 0:
        return None
    return progress.correct_count >= progress.incorrect_count


class PracticeStateMachine:
    """Drives one learner through a lesson's words in three modes.

    One UI thread is expected to call the public methods. The auto-advance
    timer is the only other actor; it re-enters through the same lock and
    drops itself if the question it was armed for is no longer current.
    """

    def __init__(
        self,
        user_id: str,
        words: list[VocabularyWord],
        store,
        initial_progress: dict[int, UserProgress] | None = None,
        mode: Mode | str = Mode.LEARN,
        scheduler=None,
        audio=None,
        rng=None,
        auto_advance_seconds: float = settings.AUTO_ADVANCE_SECONDS,
    ):
        self.user_id = user_id
        self._store = store
        self._audio = audio
        self._rng = rng
        self._lock = threading.RLock()
        self._sequencer = SessionSequencer(words, rng=rng)
        self._words = self._sequencer.words(Mode.LEARN)
        self._timer = AutoAdvanceTimer(scheduler, delay=auto_advance_seconds)
        if initial_progress is None:
            initial_progress = store.get_progress(user_id)
        self._progress = dict(initial_progress)

        self._outcomes: dict[int, bool] = {}
        for word in self._words:
            progress = self._progress.get(word.id)
            verdict = classify_history(progress) if progress else None
            if verdict is not None:
                self._outcomes[word.id] = verdict

        self._flipped = False
        self._questions: dict[int, TestQuestion] = {}
        self._attempt = 0
        self._submitted_attempt: int | None = None
        self._closed = False
        self._mode = Mode(mode)
        self._state = State.LEARN
        self._enter(self._mode)

    # -- views --------------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def state(self) -> State:
        return self._state

    @property
    def words(self) -> list[VocabularyWord]:
        return self._sequencer.words(self._mode)

    @property
    def position(self) -> int:
        return self._sequencer.position(self._mode)

    @property
    def current_word(self) -> VocabularyWord | None:
        return self._sequencer.current(self._mode)

    @property
    def is_flipped(self) -> bool:
        return self._flipped

    @property
    def auto_advance_pending(self) -> bool:
        return self._timer.pending

    def progress_for(self, word_id: int) -> UserProgress | None:
        return self._progress.get(word_id)

    def practice_outcome(self, word_id: int) -> bool | None:
        return self._outcomes.get(word_id)

    @property
    def practice_complete(self) -> bool:
        return bool(self._words) and all(w.id in self._outcomes for w in self._words)

    def practice_summary(self) -> PracticeSummary:
        correct, incorrect, unpracticed = [], [], []
        for word in self._words:
            outcome = self._outcomes.get(word.id)
            if outcome is None:
                unpracticed.append(word)
            elif outcome:
                correct.append(word)
            else:
                incorrect.append(word)
        return PracticeSummary(correct=correct, incorrect=incorrect, unpracticed=unpracticed)

    @property
    def current_question(self) -> TestQuestion | None:
        word = self._sequencer.current(Mode.TEST)
        if word is None:
            return None
        return self._questions.get(word.id)

    def test_questions(self) -> list[tuple[VocabularyWord, TestQuestion]]:
        return [
            (word, self._questions[word.id])
            for word in self._sequencer.words(Mode.TEST)
            if word.id in self._questions
        ]

    @property
    def all_answered(self) -> bool:
        return bool(self._questions) and all(q.answered for q in self._questions.values())

    def test_score(self) -> TestScore:
        answered = [q for q in self._questions.values() if q.answered]
        return TestScore(
            correct=sum(1 for q in answered if q.is_correct),
            answered=len(answered),
            total=len(self._questions),
        )

    # -- mode handling ------------------------------------------------------

    def switch_mode(self, mode: Mode | str) -> bool:
        """Leave the current mode for ``mode``; same-mode switches are ignored."""
        mode = Mode(mode)
        with self._lock:
            if self._closed or mode is self._mode:
                return False
            self._timer.cancel()
            self._stop_audio()
            logger.debug("Switching %s -> %s", self._mode.value, mode.value)
            self._mode = mode
            self._enter(mode)
            return True

    def _enter(self, mode: Mode) -> None:
        self._flipped = False
        if mode is Mode.LEARN:
            self._state = State.LEARN
            self._mark_current_seen()
        elif mode is Mode.PRACTICE:
            if self.practice_complete:
                self._state = State.PRACTICE_SUMMARY
            else:
                self._state = State.PRACTICE_CARD
                self._mark_current_seen()
        else:
            resume = bool(self._questions) and self._submitted_attempt != self._attempt
            if resume:
                self._sequencer.start_test()
                self._state = State.TEST_QUESTION
            else:
                self._start_test()

    # -- navigation ---------------------------------------------------------

    def next(self) -> bool:
        return self._navigate(self._sequencer.next)

    def previous(self) -> bool:
        return self._navigate(self._sequencer.previous)

    def _navigate(self, move) -> bool:
        with self._lock:
            if self._closed or self._state in (State.PRACTICE_SUMMARY, State.TEST_SUBMITTED):
                return False
            self._timer.cancel()
            moved = move(self._mode)
            if moved:
                self._flipped = False
                self._stop_audio()
                self._mark_current_seen()
            return moved

    def jump_to_word(self, word_id: int) -> None:
        """Put the cursor on ``word_id``.

        From the practice summary this reopens the card and forgets the
        word's outcome, so the summary stays hidden until the list is
        complete again.
        """
        with self._lock:
            if self._closed:
                return
            index = self._sequencer.index_of(self._mode, word_id)
            self._timer.cancel()
            self._stop_audio()
            self._sequencer.move_to(self._mode, index)
            self._flipped = False
            if self._state is State.PRACTICE_SUMMARY:
                self._outcomes.pop(word_id, None)
                self._state = State.PRACTICE_CARD
            self._mark_current_seen()

    # -- practice -----------------------------------------------------------

    def flip(self) -> bool:
        with self._lock:
            if self._state is not State.PRACTICE_CARD:
                return False
            self._flipped = not self._flipped
            return True

    def answer_practice(self, correct: bool) -> bool:
        """Self-assessed answer for the current card; moves on to the next unpracticed card."""
        with self._lock:
            if self._closed or self._state is not State.PRACTICE_CARD:
                return False
            word = self.current_word
            if word is None:
                return False
            self._outcomes[word.id] = correct
            self._record_answer(word.id, correct)
            if not self._move_to_unpracticed(start=self.position + 1):
                self._sequencer.next(Mode.PRACTICE)
            self._flipped = False
            self._stop_audio()
            if self.practice_complete:
                self._state = State.PRACTICE_SUMMARY
            else:
                self._mark_current_seen()
            return True

    def _move_to_unpracticed(self, start: int) -> bool:
        """Move the practice cursor to the first word without an outcome at or after ``start``, wrapping."""
        count = len(self._words)
        for step in range(count):
            index = (start + step) % count
            if self._words[index].id not in self._outcomes:
                self._sequencer.move_to(Mode.PRACTICE, index)
                return True
        return False

    def show_summary(self) -> bool:
        with self._lock:
            if self._state is not State.PRACTICE_CARD:
                return False
            self._stop_audio()
            self._state = State.PRACTICE_SUMMARY
            return True

    def resume_practice(self) -> bool:
        """Back from the summary to the card under the practice cursor."""
        with self._lock:
            if self._state is not State.PRACTICE_SUMMARY:
                return False
            self._state = State.PRACTICE_CARD
            self._flipped = False
            self._mark_current_seen()
            return True

    def reset_practice(self) -> None:
        """Forget every practice outcome of this view and start from the first card."""
        with self._lock:
            if self._mode is not Mode.PRACTICE:
                return
            self._outcomes.clear()
            if self._words:
                self._sequencer.move_to(Mode.PRACTICE, 0)
            self._flipped = False
            self._state = State.PRACTICE_CARD
            self._mark_current_seen()

    # -- test ---------------------------------------------------------------

    def _start_test(self) -> None:
        words = self._sequencer.start_test(retake=True)
        options = build_test_options(words, rng=self._rng)
        self._questions = {
            word.id: TestQuestion(word_id=word.id, options=options[word.id]) for word in words
        }
        self._attempt += 1
        logger.debug("Started test attempt %d with %d questions", self._attempt, len(words))
        self._state = State.TEST_QUESTION
        self._move_to_unanswered(start=0)

    def select_answer(self, option: str) -> bool | None:
        """Answer the current question; returns correctness, or ``None`` if ignored.

        Answers are final. The auto-advance timer is armed for the question
        that was just answered.
        """
        with self._lock:
            if self._closed or self._state is not State.TEST_QUESTION:
                return None
            word = self._sequencer.current(Mode.TEST)
            if word is None:
                return None
            question = self._questions[word.id]
            if question.answered:
                return None
            if option not in question.options:
                raise ValueError(f"{option!r} is not an option for this question")
            question.selected_answer = option
            question.is_correct = option == word.english
            self._record_answer(word.id, question.is_correct)
            index = self._sequencer.position(Mode.TEST)
            self._timer.schedule(partial(self._auto_advance, self._attempt, index))
            return question.is_correct

    def _auto_advance(self, attempt: int, index: int) -> None:
        with self._lock:
            if (
                self._closed
                or self._mode is not Mode.TEST
                or self._state is not State.TEST_QUESTION
                or attempt != self._attempt
                or index != self._sequencer.position(Mode.TEST)
            ):
                return
            if index == len(self._sequencer) - 1 or not self._move_to_unanswered(start=index + 1):
                self._submit()

    def _move_to_unanswered(self, start: int) -> bool:
        """Move the test cursor to the first unanswered question at or after ``start``, wrapping."""
        order = self._sequencer.words(Mode.TEST)
        count = len(order)
        for step in range(count):
            index = (start + step) % count
            if not self._questions[order[index].id].answered:
                self._sequencer.move_to(Mode.TEST, index)
                return True
        return False

    def view_results(self) -> bool:
        with self._lock:
            if self._state is not State.TEST_QUESTION or not self.all_answered:
                return False
            self._timer.cancel()
            self._submit()
            return True

    def _submit(self) -> None:
        self._state = State.TEST_SUBMITTED
        self._submitted_attempt = self._attempt
        self._stop_audio()

    def retake(self) -> bool:
        """Throw away this attempt's answers and start over on a new permutation."""
        with self._lock:
            if self._closed or self._mode is not Mode.TEST:
                return False
            self._timer.cancel()
            self._stop_audio()
            logger.debug("Retaking test after attempt %d", self._attempt)
            self._start_test()
            return True

    def wait_for_advance(self, timeout: float | None = None) -> bool:
        return self._timer.wait(timeout)

    # -- persistence --------------------------------------------------------

    def _local_update(self, word_id: int, correct: bool | None = None) -> None:
        now = datetime.now().isoformat(timespec="seconds")
        current = self._progress.get(word_id) or UserProgress(
            id=0, user_id=self.user_id, word_id=word_id, created_at=now
        )
        self._progress[word_id] = replace(
            current,
            seen=True,
            correct_count=current.correct_count + (1 if correct is True else 0),
            incorrect_count=current.incorrect_count + (1 if correct is False else 0),
            last_reviewed_at=now,
            updated_at=now,
        )

    def _persist(self, word_id: int, correct: bool | None = None) -> None:
        try:
            row = self._store.upsert_progress(
                self.user_id,
                word_id,
                seen=True,
                correct_delta=1 if correct is True else 0,
                incorrect_delta=1 if correct is False else 0,
            )
        except ProgressWriteError:
            logger.exception("Failed to update progress for word %s", word_id)
            return
        self._progress[word_id] = row

    def _record_answer(self, word_id: int, correct: bool) -> None:
        self._local_update(word_id, correct)
        self._persist(word_id, correct)

    def _mark_current_seen(self) -> None:
        if self._mode is Mode.TEST:
            return
        word = self.current_word
        if word is None:
            return
        progress = self._progress.get(word.id)
        if progress is not None and progress.seen:
            return
        self._local_update(word.id)
        self._persist(word.id)

    def _stop_audio(self) -> None:
        if self._audio is not None:
            self._audio.stop()

    # -- teardown -----------------------------------------------------------

    def close(self) -> None:
        """Release the timer and side effects; the session is unusable afterwards."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._timer.cancel()
            self._stop_audio()
            self._questions = {}

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
