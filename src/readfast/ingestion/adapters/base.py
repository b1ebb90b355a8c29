"""Shared adapter contract for per-format document parsers."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from readfast.ingestion.models import ParsedDocument


@runtime_checkable
class IngestionAdapter(Protocol):
    """Protocol that every format adapter must implement."""

    def supports(self, path: Path, sniffed_bytes: bytes | None = None) -> bool:
        """Return True when this adapter can parse the given file."""

    def parse(self, raw: bytes, *, source: str | None = None) -> ParsedDocument:
        """Turn raw document bytes into metadata, words and chapter offsets."""
