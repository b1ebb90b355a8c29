"""Import orchestrator: copy, parse and persist a picked document."""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
from pathlib import Path
import re
from typing import TYPE_CHECKING
import uuid

from readfast.ingestion.adapters import build_default_adapters
from readfast.ingestion.adapters.base import IngestionAdapter
from readfast.ingestion.errors import IngestionError
from readfast.ingestion.models import (
    BookRecord,
    DocumentKind,
    ImportProgress,
    ImportStage,
    ParsedDocument,
    PickedDocument,
    ProgressCallback,
)
from readfast.ingestion.normalization import UNTITLED
from readfast.library.files import DocumentStore
from readfast.library.repository import LibraryRepository

if TYPE_CHECKING:
    from readfast.config import LibrarySettings

logger = logging.getLogger(__name__)

STAGE_MESSAGES: dict[ImportStage, str] = {
    ImportStage.COPYING: "Saving file...",
    ImportStage.PARSING: "Extracting text...",
    ImportStage.SAVING: "Adding to library...",
}

_BOOK_EXTENSION_RE = re.compile(r"\.(epub|pdf)$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[_-]")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_START_RE = re.compile(r"\b\w")


def title_from_filename(filename: str) -> str:
    """Turn ``my_great-book.epub`` into ``My Great Book``."""

    name = _BOOK_EXTENSION_RE.sub("", filename)
    name = _SEPARATOR_RE.sub(" ", name)
    name = _WHITESPACE_RE.sub(" ", name).strip()
    name = _WORD_START_RE.sub(lambda match: match.group(0).upper(), name)
    return name or UNTITLED


def generate_book_id() -> str:
    return f"book_{uuid.uuid4().hex}"


class DocumentIngestor:
    """Run the copy, parse and save stages for one picked document at a time."""

    def __init__(self, repository: LibraryRepository, documents: DocumentStore) -> None:
        self._repository = repository
        self._documents = documents
        self._adapter_map: dict[DocumentKind, IngestionAdapter] = {}

    @property
    def repository(self) -> LibraryRepository:
        return self._repository

    @property
    def documents(self) -> DocumentStore:
        return self._documents

    @property
    def adapter_map(self) -> dict[DocumentKind, IngestionAdapter]:
        """Registered adapters keyed by document kind."""

        return dict(self._adapter_map)

    def register_adapter(self, kind: DocumentKind, adapter: IngestionAdapter) -> None:
        """Register the adapter that parses documents of ``kind``."""

        if not isinstance(kind, DocumentKind):
            raise ValueError(f"Unsupported document kind: {kind!r}")
        self._adapter_map[kind] = adapter

    async def import_document(
        self,
        picked: PickedDocument,
        on_progress: ProgressCallback | None = None,
    ) -> BookRecord:
        """Import ``picked`` into the library and return the saved record.

        Stages are reported strictly in the order copying, parsing, saving.
        On failure no record is saved and the copied file is removed.
        """

        book_id = generate_book_id()
        stored_path: Path | None = None

        try:
            self._emit(on_progress, ImportStage.COPYING)
            stored_path = await self._documents.store(picked, book_id)

            self._emit(on_progress, ImportStage.PARSING)
            parsed = await self._parse(picked, stored_path)

            record = BookRecord(
                id=book_id,
                title=parsed.metadata.title or title_from_filename(picked.name),
                author=parsed.metadata.author,
                kind=picked.kind,
                storage_location=str(stored_path),
                word_count=parsed.word_count,
                added_at=datetime.now(),
                chapters=list(parsed.chapters) or None,
            )

            self._emit(on_progress, ImportStage.SAVING)
            self._repository.save_book(record, parsed.words)
        except Exception as exc:
            logger.error("Error importing book %s: %s", picked.name, exc)
            if stored_path is not None:
                self._documents.delete(stored_path)
            raise

        logger.info(
            "Imported '%s' (%s, %d words, %d chapters)",
            record.title,
            record.kind.value,
            record.word_count,
            len(record.chapters or []),
        )
        return record

    async def _parse(self, picked: PickedDocument, stored_path: Path) -> ParsedDocument:
        adapter = self._adapter_map.get(picked.kind)
        if adapter is None:
            raise IngestionError(f"No adapter registered for {picked.kind.value} documents", picked.name)

        try:
            raw = await asyncio.to_thread(stored_path.read_bytes)
        except OSError as exc:
            raise IngestionError(f"Failed to read stored document: {exc}", picked.name) from exc

        try:
            parsed = await asyncio.to_thread(adapter.parse, raw, source=picked.name)
        except IngestionError:
            raise
        except Exception as exc:
            raise IngestionError(f"Adapter extraction failed: {exc}", picked.name) from exc

        if not isinstance(parsed, ParsedDocument):
            raise IngestionError("Adapter returned non-canonical output", picked.name)
        return parsed

    @staticmethod
    def _emit(on_progress: ProgressCallback | None, stage: ImportStage) -> None:
        if on_progress is None:
            return
        try:
            on_progress(ImportProgress(stage=stage, message=STAGE_MESSAGES[stage]))
        except Exception:
            logger.exception("Progress observer failed at stage %s", stage.value)


def build_default_ingestor(settings: LibrarySettings) -> DocumentIngestor:
    """Wire the default adapters, repository and document store."""

    ingestor = DocumentIngestor(
        LibraryRepository(settings.db_path),
        DocumentStore(settings.books_path),
    )
    for kind, adapter in build_default_adapters(settings.normalization).items():
        ingestor.register_adapter(kind, adapter)
    return ingestor
