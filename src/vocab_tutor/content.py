"""Read-only access to books, lessons and their vocabulary."""
from vocab_tutor.db import get_connection
from vocab_tutor.models import Book, Lesson, VocabularyWord


def _word_from_row(row) -> VocabularyWord:
    return VocabularyWord(
        id=row["id"],
        lesson_id=row["lesson_id"],
        arabic=row["arabic"],
        english=row["english"],
        order=row["word_order"],
    )


def get_books(db_path: str) -> list[Book]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM books ORDER BY id").fetchall()
    conn.close()
    return [Book(id=r["id"], title=r["title"], description=r["description"] or "") for r in rows]


def get_lessons(db_path: str, book_id: int | None = None) -> list[Lesson]:
    conn = get_connection(db_path)
    if book_id is None:
        rows = conn.execute("SELECT * FROM lessons ORDER BY book_id, position, id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM lessons WHERE book_id = ? ORDER BY position, id", (book_id,)
        ).fetchall()
    conn.close()
    return [
        Lesson(id=r["id"], book_id=r["book_id"], title=r["title"], type=r["type"], position=r["position"])
        for r in rows
    ]


def get_lesson(db_path: str, lesson_id: int) -> Lesson | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM lessons WHERE id = ?", (lesson_id,)).fetchone()
    conn.close()
    if row is None:
        return None
    return Lesson(id=row["id"], book_id=row["book_id"], title=row["title"], type=row["type"], position=row["position"])


def get_words_by_lesson(db_path: str, lesson_id: int) -> list[VocabularyWord]:
    """Words of a lesson in their stored order."""
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM vocabulary_words WHERE lesson_id = ? ORDER BY word_order, id",
        (lesson_id,),
    ).fetchall()
    conn.close()
    return [_word_from_row(r) for r in rows]


def get_word_lessons(db_path: str) -> dict[int, dict]:
    """Map every word id to its lesson and book."""
    conn = get_connection(db_path)
    rows = conn.execute(
        """SELECT w.id AS word_id, l.id AS lesson_id, l.title AS lesson_title,
            b.id AS book_id, b.title AS book_title
        FROM vocabulary_words w
        JOIN lessons l ON w.lesson_id = l.id
        JOIN books b ON l.book_id = b.id"""
    ).fetchall()
    conn.close()
    return {
        r["word_id"]: {
            "lesson_id": r["lesson_id"],
            "lesson_title": r["lesson_title"],
            "book_id": r["book_id"],
            "book_title": r["book_title"],
        }
        for r in rows
    }


def count_words(db_path: str, book_id: int | None = None) -> int:
    conn = get_connection(db_path)
    if book_id is None:
        count = conn.execute("SELECT COUNT(*) FROM vocabulary_words").fetchone()[0]
    else:
        count = conn.execute(
            """SELECT COUNT(*) FROM vocabulary_words w
            JOIN lessons l ON w.lesson_id = l.id
            WHERE l.book_id = ?""",
            (book_id,),
        ).fetchone()[0]
    conn.close()
    return count
