"""Ingestion package interfaces."""

from .errors import ExtractionError, IngestionError, StructureError
from .models import BookRecord, Chapter, DocumentKind, ParsedDocument, PickedDocument

__all__ = [
    "BookRecord",
    "Chapter",
    "DocumentKind",
    "ExtractionError",
    "IngestionError",
    "ParsedDocument",
    "PickedDocument",
    "StructureError",
]
