"""Canonical data structures shared by adapters, the ingestor and storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable


class DocumentKind(Enum):
    EPUB = "epub"
    PDF = "pdf"


class ImportStage(Enum):
    COPYING = "copying"
    PARSING = "parsing"
    SAVING = "saving"


@dataclass(frozen=True, slots=True)
class Chapter:
    """Chapter boundary expressed as an offset into the word sequence."""

    title: str
    start_index: int


@dataclass(slots=True)
class DocumentMetadata:
    """Best-effort metadata recovered from a source document."""

    title: str | None = None
    author: str | None = None


@dataclass(slots=True)
class ParsedDocument:
    """Adapter output: metadata, reading-order words and chapter offsets."""

    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    words: list[str] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.words)


@dataclass(frozen=True, slots=True)
class ImportProgress:
    stage: ImportStage
    message: str


ProgressCallback = Callable[[ImportProgress], None]


@dataclass(frozen=True, slots=True)
class PickedDocument:
    """A user-selected source file whose kind has already been determined."""

    path: Path
    name: str
    kind: DocumentKind
    size: int = 0


@dataclass(slots=True)
class BookRecord:
    """Persisted library entry; the word sequence is stored separately."""

    id: str
    title: str
    kind: DocumentKind
    storage_location: str
    word_count: int
    added_at: datetime
    author: str | None = None
    current_word: int = 0
    last_read_at: datetime | None = None
    chapters: list[Chapter] | None = None
