"""CLI command listing library books with reading progress."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from readfast.config import LibrarySettings
from readfast.ingestion.models import BookRecord
from readfast.library.files import DocumentStore
from readfast.library.progress import BookLibrary, calculate_progress, estimate_time_remaining
from readfast.library.repository import LibraryRepository


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _book_payload(book: BookRecord, wpm: int) -> dict[str, object]:
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "format": book.kind.value,
        "word_count": book.word_count,
        "current_word": book.current_word,
        "progress_percent": calculate_progress(book),
        "time_remaining": estimate_time_remaining(book, wpm),
        "chapter_count": len(book.chapters or []),
        "added_at": book.added_at.isoformat(),
        "last_read_at": book.last_read_at.isoformat() if book.last_read_at else None,
    }


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="List library books with progress estimates")
    parser.add_argument("--db-path", default=None, help="SQLite library path (overrides READFAST_DB_PATH)")
    parser.add_argument("--wpm", type=int, default=None, help="Reading speed for time estimates")
    parser.add_argument("--remove", default=None, metavar="BOOK_ID", help="Remove a book before listing")
    args = parser.parse_args(argv)

    try:
        settings = LibrarySettings.from_env()
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    wpm = settings.reading_wpm if args.wpm is None else args.wpm
    if wpm <= 0:
        parser.error("--wpm must be positive")

    db_path = Path(args.db_path) if args.db_path else settings.db_path
    removed: bool | None = None

    with LibraryRepository(db_path) as repository:
        if args.remove:
            library = BookLibrary(repository, DocumentStore(settings.books_path))
            removed = library.remove(args.remove)
            if not removed:
                LOGGER.warning("No book with id %s", args.remove)
        books = [_book_payload(book, wpm) for book in repository.list_books()]

    payload: dict[str, object] = {
        "db_path": str(db_path),
        "total": len(books),
        "books": books,
    }
    if args.remove:
        payload["removed"] = {"id": args.remove, "success": bool(removed)}
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if removed is not False else 1


if __name__ == "__main__":
    raise SystemExit(main())
