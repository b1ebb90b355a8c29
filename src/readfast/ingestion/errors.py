"""Error taxonomy for document ingestion."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False, slots=True)
class IngestionError(Exception):
    """Domain error for adapter routing, structure and extraction failures."""

    message: str
    source: str | None = None

    def __str__(self) -> str:
        if self.source is None:
            return self.message
        return f"{self.message} (source={self.source})"


class StructureError(IngestionError):
    """Raised when a container cannot be resolved into a reading order."""


class ExtractionError(IngestionError):
    """Raised when a document yields too little text to be readable."""
