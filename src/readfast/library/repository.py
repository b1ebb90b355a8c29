"""Repository for book records, chapter offsets and cached word sequences."""

from __future__ import annotations

from datetime import datetime
import json
import logging
from pathlib import Path
import sqlite3

from readfast.ingestion.models import BookRecord, Chapter, DocumentKind
from readfast.library.schema import apply_runtime_pragmas, ensure_schema


logger = logging.getLogger(__name__)


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class LibraryRepository:
    """SQLite-backed storage for imported books.

    The word sequence lives in its own table so that progress updates only
    touch the small ``books`` row.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._connection = sqlite3.connect(str(self._db_path))
        self._connection.row_factory = sqlite3.Row
        apply_runtime_pragmas(self._connection)
        ensure_schema(self._connection)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "LibraryRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def save_book(self, record: BookRecord, words: list[str]) -> None:
        """Insert or replace a book together with its chapters and words.

        Everything is written in one transaction: a failure leaves no
        partial record behind.
        """

        if record.word_count != len(words):
            raise ValueError("word_count does not match the number of words")

        with self._connection:
            self._connection.execute(
                """
                INSERT INTO books (
                    id, title, author, kind, storage_location,
                    word_count, current_word, added_at, last_read_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    author = excluded.author,
                    kind = excluded.kind,
                    storage_location = excluded.storage_location,
                    word_count = excluded.word_count,
                    current_word = excluded.current_word,
                    added_at = excluded.added_at,
                    last_read_at = excluded.last_read_at
                """,
                (
                    record.id,
                    record.title,
                    record.author,
                    record.kind.value,
                    record.storage_location,
                    record.word_count,
                    record.current_word,
                    _format_timestamp(record.added_at),
                    _format_timestamp(record.last_read_at),
                ),
            )
            self._connection.execute("DELETE FROM chapters WHERE book_id = ?", (record.id,))
            self._connection.executemany(
                """
                INSERT INTO chapters (book_id, position, title, start_index)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (record.id, position, chapter.title, chapter.start_index)
                    for position, chapter in enumerate(record.chapters or [])
                ],
            )
            self._connection.execute(
                """
                INSERT INTO book_words (book_id, words_json)
                VALUES (?, ?)
                ON CONFLICT(book_id) DO UPDATE SET words_json = excluded.words_json
                """,
                (record.id, json.dumps(words, ensure_ascii=False)),
            )

    def get_book(self, book_id: str) -> BookRecord | None:
        row = self._connection.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def list_books(self) -> list[BookRecord]:
        """Return every book, most recently added first."""

        rows = self._connection.execute("SELECT * FROM books ORDER BY added_at DESC, id ASC").fetchall()
        return [self._row_to_record(row) for row in rows]

    def load_words(self, book_id: str) -> list[str] | None:
        row = self._connection.execute(
            "SELECT words_json FROM book_words WHERE book_id = ?",
            (book_id,),
        ).fetchone()
        if row is None:
            return None
        return list(json.loads(row["words_json"]))

    def update_progress(self, book_id: str, current_word: int, *, read_at: datetime | None = None) -> bool:
        """Record the reader position; returns False when the book is unknown."""

        if current_word < 0:
            raise ValueError("current_word cannot be negative")

        timestamp = read_at or datetime.now()
        with self._connection:
            cursor = self._connection.execute(
                """
                UPDATE books
                SET current_word = ?, last_read_at = ?
                WHERE id = ?
                """,
                (current_word, _format_timestamp(timestamp), book_id),
            )
        return cursor.rowcount > 0

    def delete_book(self, book_id: str) -> BookRecord | None:
        """Delete a book with its chapters and word cache; return what was removed."""

        record = self.get_book(book_id)
        if record is None:
            return None

        with self._connection:
            self._connection.execute("DELETE FROM books WHERE id = ?", (book_id,))
        logger.debug("Deleted book %s from library", book_id)
        return record

    def _load_chapters(self, book_id: str) -> list[Chapter] | None:
        rows = self._connection.execute(
            """
            SELECT title, start_index
            FROM chapters
            WHERE book_id = ?
            ORDER BY position ASC
            """,
            (book_id,),
        ).fetchall()
        if not rows:
            return None
        return [Chapter(title=row["title"], start_index=int(row["start_index"])) for row in rows]

    def _row_to_record(self, row: sqlite3.Row) -> BookRecord:
        return BookRecord(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            kind=DocumentKind(row["kind"]),
            storage_location=row["storage_location"],
            word_count=int(row["word_count"]),
            current_word=int(row["current_word"]),
            added_at=_parse_timestamp(row["added_at"]) or datetime.now(),
            last_read_at=_parse_timestamp(row["last_read_at"]),
            chapters=self._load_chapters(row["id"]),
        )
