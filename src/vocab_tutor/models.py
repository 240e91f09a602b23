"""Data classes for lesson content, learner progress and dashboard results."""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional


class Mode(str, Enum):
    LEARN = "learn"
    PRACTICE = "practice"
    TEST = "test"


@dataclass
class Book:
    id: int
    title: str
    description: str = ""


@dataclass
class Lesson:
    id: int
    book_id: int
    title: str
    type: str = "vocabulary"
    position: int = 0


@dataclass(frozen=True)
class VocabularyWord:
    id: int
    lesson_id: int
    arabic: str
    english: str
    order: int = 0


@dataclass
class UserProgress:
    id: int
    user_id: str
    word_id: int
    seen: bool = False
    correct_count: int = 0
    incorrect_count: int = 0
    last_reviewed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def total_reviews(self) -> int:
        return self.correct_count + self.incorrect_count

    @classmethod
    def from_row(cls, row) -> "UserProgress":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            word_id=row["word_id"],
            seen=bool(row["seen"]),
            correct_count=row["correct_count"],
            incorrect_count=row["incorrect_count"],
            last_reviewed_at=row["last_reviewed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class LessonProgress:
    lesson_id: int
    total_words: int = 0
    words_seen: int = 0
    words_mastered: int = 0
    completion_percentage: int = 0


@dataclass
class TestQuestion:
    __test__ = False

    word_id: int
    options: list[str]
    selected_answer: Optional[str] = None
    is_correct: Optional[bool] = None

    @property
    def answered(self) -> bool:
        return self.selected_answer is not None


@dataclass
class DailyActivity:
    date: str
    words_reviewed: int = 0
    practice_sessions: int = 0
    test_sessions: int = 0
    active_users: int = 0


@dataclass
class LessonMetrics:
    lesson_id: int
    lesson_title: Optional[str]
    total_correct: int = 0
    total_incorrect: int = 0
    words_practiced: int = 0
    accuracy_rate: float = 0.0


@dataclass
class PracticeMetrics:
    total_words_practiced: int = 0
    accuracy_rate: float = 0.0
    words_seen: int = 0
    words_not_seen: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    by_lesson: list[LessonMetrics] = field(default_factory=list)


@dataclass
class TestResult:
    __test__ = False

    date: str
    score: float
    total_words: int
    correct_words: int
    lesson_id: Optional[int] = None
    lesson_title: Optional[str] = None


@dataclass
class UserActivitySummary:
    total_words_reviewed: int = 0
    total_practice_sessions: int = 0
    total_test_sessions: int = 0
    average_accuracy: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[str] = None


@dataclass
class BookSummary:
    total_words_reviewed: int = 0
    total_practice_sessions: int = 0
    total_test_sessions: int = 0
    average_accuracy: float = 0.0


@dataclass
class BookActivity:
    book_id: int
    book_title: str
    daily_activity: list[DailyActivity] = field(default_factory=list)
    summary: BookSummary = field(default_factory=BookSummary)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _camel_keys(value):
    if isinstance(value, dict):
        return {_camel(k) if isinstance(k, str) else k: _camel_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camel_keys(v) for v in value]
    return value


def to_camel_dict(obj) -> dict:
    """Dashboard payload for a result dataclass, keyed the way the charts expect.

    ``None`` values are kept as-is (e.g. ``lessonTitle: None``).
    """
    return _camel_keys(asdict(obj))
