"""Reading progress helpers and library-level book removal."""

from __future__ import annotations

import logging
import math

from readfast.config import DEFAULT_READING_WPM
from readfast.ingestion.models import BookRecord
from readfast.library.files import DocumentStore
from readfast.library.repository import LibraryRepository


logger = logging.getLogger(__name__)


def calculate_progress(book: BookRecord) -> int:
    """Return the read share of a book as a whole percentage (half rounds up)."""

    if book.word_count <= 0:
        return 0
    return math.floor(book.current_word * 100 / book.word_count + 0.5)


def estimate_time_remaining(book: BookRecord, wpm: int = DEFAULT_READING_WPM) -> str:
    """Format the remaining reading time as ``"N min"`` or ``"Hh Mm"``."""

    if wpm <= 0:
        raise ValueError("wpm must be positive")

    words_remaining = max(book.word_count - book.current_word, 0)
    minutes = math.ceil(words_remaining / wpm)
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m"


class BookLibrary:
    """Coordinate record removal with cleanup of the stored document."""

    def __init__(self, repository: LibraryRepository, documents: DocumentStore) -> None:
        self._repository = repository
        self._documents = documents

    def remove(self, book_id: str) -> bool:
        record = self._repository.delete_book(book_id)
        if record is None:
            return False
        self._documents.delete(record.storage_location)
        logger.info("Removed '%s' (%s) from library", record.title, book_id)
        return True
