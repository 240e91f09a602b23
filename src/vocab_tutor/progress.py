"""Per-word learner progress: lazy creation, additive counters, sticky ``seen``."""
import sqlite3
from datetime import datetime

from vocab_tutor.db import get_connection
from vocab_tutor.models import LessonProgress, UserProgress


class ProgressWriteError(Exception):
    """A progress update could not be committed."""


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def get_progress(db_path: str, user_id: str, lesson_id: int | None = None) -> dict[int, UserProgress]:
    """Progress rows of a user keyed by word id, optionally for one lesson only."""
    conn = get_connection(db_path)
    if lesson_id is None:
        rows = conn.execute(
            "SELECT * FROM user_progress WHERE user_id = ?", (user_id,)
        ).fetchall()
    else:
        rows = conn.execute(
            """SELECT p.* FROM user_progress p
            JOIN vocabulary_words w ON p.word_id = w.id
            WHERE p.user_id = ? AND w.lesson_id = ?""",
            (user_id, lesson_id),
        ).fetchall()
    conn.close()
    return {row["word_id"]: UserProgress.from_row(row) for row in rows}


def upsert_progress(
    db_path: str,
    user_id: str,
    word_id: int,
    seen: bool = False,
    correct_delta: int = 0,
    incorrect_delta: int = 0,
) -> UserProgress:
    """Create or update the (user, word) row in a single statement.

    Counters are added to, ``seen`` can only go from false to true, and
    ``last_reviewed_at`` moves only when something was actually reviewed.
    """
    if correct_delta < 0 or incorrect_delta < 0:
        raise ValueError("progress counters can only be incremented")
    now = _now()
    reviewed = seen or correct_delta > 0 or incorrect_delta > 0
    conn = get_connection(db_path)
    conn.execute(
        """INSERT INTO user_progress
            (user_id, word_id, seen, correct_count, incorrect_count,
             last_reviewed_at, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_id, word_id) DO UPDATE SET
            seen = MAX(seen, excluded.seen),
            correct_count = correct_count + excluded.correct_count,
            incorrect_count = incorrect_count + excluded.incorrect_count,
            last_reviewed_at = COALESCE(excluded.last_reviewed_at, last_reviewed_at),
            updated_at = excluded.updated_at""",
        (
            user_id, word_id, int(seen), correct_delta, incorrect_delta,
            now if reviewed else None, now, now,
        ),
    )
    conn.commit()
    row = conn.execute(
        "SELECT * FROM user_progress WHERE user_id = ? AND word_id = ?", (user_id, word_id)
    ).fetchone()
    conn.close()
    return UserProgress.from_row(row)


def get_lesson_progress(db_path: str, user_id: str, lesson_id: int) -> LessonProgress:
    """Completion of one lesson; a word is mastered once answered correctly more often than not."""
    conn = get_connection(db_path)
    row = conn.execute(
        """SELECT COUNT(w.id) AS total,
            SUM(CASE WHEN p.seen = 1 THEN 1 ELSE 0 END) AS seen,
            SUM(CASE WHEN p.correct_count > p.incorrect_count THEN 1 ELSE 0 END) AS mastered
        FROM vocabulary_words w
        LEFT JOIN user_progress p ON p.word_id = w.id AND p.user_id = ?
        WHERE w.lesson_id = ?""",
        (user_id, lesson_id),
    ).fetchone()
    conn.close()
    total = row["total"] or 0
    mastered = row["mastered"] or 0
    return LessonProgress(
        lesson_id=lesson_id,
        total_words=total,
        words_seen=row["seen"] or 0,
        words_mastered=mastered,
        completion_percentage=round(mastered / total * 100) if total else 0,
    )


class ProgressStore:
    """Progress persistence bound to one database file.

    Write failures surface as ``ProgressWriteError`` so callers can decide
    whether to keep going on their local state.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    def get_progress(self, user_id: str, lesson_id: int | None = None) -> dict[int, UserProgress]:
        return get_progress(self.db_path, user_id, lesson_id)

    def upsert_progress(
        self,
        user_id: str,
        word_id: int,
        seen: bool = False,
        correct_delta: int = 0,
        incorrect_delta: int = 0,
    ) -> UserProgress:
        try:
            return upsert_progress(
                self.db_path, user_id, word_id,
                seen=seen, correct_delta=correct_delta, incorrect_delta=incorrect_delta,
            )
        except sqlite3.Error as exc:
            raise ProgressWriteError(f"could not update progress for word {word_id}") from exc

    def lesson_progress(self, user_id: str, lesson_id: int) -> LessonProgress:
        return get_lesson_progress(self.db_path, user_id, lesson_id)
