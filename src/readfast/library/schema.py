"""SQLite schema and pragmas for the book library."""

from __future__ import annotations

import sqlite3


PRAGMA_BUSY_TIMEOUT_MS = 5000


def apply_runtime_pragmas(connection: sqlite3.Connection) -> None:
    """Apply runtime pragmas for a single-user local library database."""

    connection.execute("PRAGMA journal_mode=WAL;")
    connection.execute(f"PRAGMA busy_timeout={PRAGMA_BUSY_TIMEOUT_MS};")
    connection.execute("PRAGMA synchronous=NORMAL;")
    connection.execute("PRAGMA foreign_keys=ON;")


def ensure_schema(connection: sqlite3.Connection) -> None:
    """Create book, chapter and word-cache tables if missing."""

    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS books (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            author TEXT,
            kind TEXT NOT NULL CHECK(kind IN ('epub', 'pdf')),
            storage_location TEXT NOT NULL,
            word_count INTEGER NOT NULL CHECK(word_count >= 0),
            current_word INTEGER NOT NULL DEFAULT 0 CHECK(current_word >= 0),
            added_at TEXT NOT NULL,
            last_read_at TEXT
        );

        CREATE TABLE IF NOT EXISTS chapters (
            book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            title TEXT NOT NULL,
            start_index INTEGER NOT NULL CHECK(start_index >= 0),
            PRIMARY KEY (book_id, position)
        );

        CREATE TABLE IF NOT EXISTS book_words (
            book_id TEXT PRIMARY KEY REFERENCES books(id) ON DELETE CASCADE,
            words_json TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_books_added_at ON books(added_at);
        """
    )
