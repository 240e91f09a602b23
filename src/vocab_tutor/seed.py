"""Seed the database with the bundled sample vocabulary."""
import json
from pathlib import Path

from vocab_tutor.db import get_connection

DATA_DIR = Path(__file__).parent / "data"


def is_seeded(db_path: str) -> bool:
    """Check whether the database already has any books."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
    conn.close()
    return count > 0


def load_sample_content() -> dict:
    return json.loads((DATA_DIR / "vocabulary.json").read_text(encoding="utf-8"))


def seed_vocabulary(db_path: str, data: dict | None = None) -> None:
    """Insert books, their lessons and words, keeping the file order."""
    data = data or load_sample_content()
    conn = get_connection(db_path)
    for book in data["books"]:
        book_id = conn.execute(
            "INSERT INTO books (title, description) VALUES (?, ?)",
            (book["title"], book.get("description", "")),
        ).lastrowid
        for position, lesson in enumerate(book["lessons"]):
            lesson_id = conn.execute(
                "INSERT INTO lessons (book_id, title, type, position) VALUES (?, ?, ?, ?)",
                (book_id, lesson["title"], lesson.get("type", "vocabulary"), position),
            ).lastrowid
            for order, word in enumerate(lesson["words"]):
                conn.execute(
                    "INSERT INTO vocabulary_words (lesson_id, arabic, english, word_order) VALUES (?, ?, ?, ?)",
                    (lesson_id, word["arabic"], word["english"], order),
                )
    conn.commit()
    conn.close()


def seed_all(db_path: str) -> None:
    """Seed once; later calls are no-ops."""
    if is_seeded(db_path):
        return
    seed_vocabulary(db_path)
