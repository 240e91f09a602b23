import pytest

from vocab_tutor.db import init_db, get_connection
from vocab_tutor.models import UserProgress, VocabularyWord
from vocab_tutor.progress import ProgressWriteError


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_tutor.db")
    return db_path


@pytest.fixture
def lesson_db(tmp_db):
    """Initialized database with one book, two lessons (6 and 3 words)."""
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    conn.execute("INSERT INTO books (id, title) VALUES (1, 'Book One')")
    conn.execute("INSERT INTO lessons (id, book_id, title, position) VALUES (1, 1, 'Greetings', 0)")
    conn.execute("INSERT INTO lessons (id, book_id, title, position) VALUES (2, 1, 'Numbers', 1)")
    greetings = [("مرحبا", "hello"), ("شكرا", "thank you"), ("نعم", "yes"),
                 ("لا", "no"), ("من فضلك", "please"), ("مع السلامة", "goodbye")]
    for order, (arabic, english) in enumerate(greetings):
        conn.execute(
            "INSERT INTO vocabulary_words (lesson_id, arabic, english, word_order) VALUES (1, ?, ?, ?)",
            (arabic, english, order),
        )
    for order, (arabic, english) in enumerate([("واحد", "one"), ("اثنان", "two"), ("ثلاثة", "three")]):
        conn.execute(
            "INSERT INTO vocabulary_words (lesson_id, arabic, english, word_order) VALUES (2, ?, ?, ?)",
            (arabic, english, order),
        )
    conn.commit()
    conn.close()
    return tmp_db


def make_words(count: int, lesson_id: int = 1) -> list[VocabularyWord]:
    return [
        VocabularyWord(id=i, lesson_id=lesson_id, arabic=f"ar{i}", english=f"en{i}", order=i)
        for i in range(1, count + 1)
    ]


class ManualHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Collects delayed callbacks until the test fires them."""

    def __init__(self):
        self.handles = []

    def call_later(self, delay, callback):
        handle = ManualHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def live(self):
        return [h for h in self.handles if not h.cancelled]

    def fire_all(self):
        handles, self.handles = self.handles, []
        for handle in handles:
            if not handle.cancelled:
                handle.callback()


class ImmediateScheduler:
    def call_later(self, delay, callback):
        callback()
        return ManualHandle(delay, callback)


class MemoryStore:
    """In-memory progress store with the same upsert semantics as the database."""

    def __init__(self, rows=None):
        self.rows = dict(rows or {})
        self.writes = []

    def get_progress(self, user_id, lesson_id=None):
        return {word_id: row for (uid, word_id), row in self.rows.items() if uid == user_id}

    def upsert_progress(self, user_id, word_id, seen=False, correct_delta=0, incorrect_delta=0):
        self.writes.append((word_id, seen, correct_delta, incorrect_delta))
        row = self.rows.get((user_id, word_id)) or UserProgress(
            id=len(self.rows) + 1, user_id=user_id, word_id=word_id
        )
        row = UserProgress(
            id=row.id, user_id=user_id, word_id=word_id,
            seen=row.seen or seen,
            correct_count=row.correct_count + correct_delta,
            incorrect_count=row.incorrect_count + incorrect_delta,
            last_reviewed_at="2026-01-01T10:00:00",
        )
        self.rows[(user_id, word_id)] = row
        return row


class FailingStore(MemoryStore):
    def upsert_progress(self, user_id, word_id, seen=False, correct_delta=0, incorrect_delta=0):
        self.writes.append((word_id, seen, correct_delta, incorrect_delta))
        raise ProgressWriteError("database is locked")


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store():
    return MemoryStore()
