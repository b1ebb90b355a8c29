"""Ingestion adapter implementations and contracts."""

import logging

from readfast.ingestion.models import DocumentKind
from readfast.ingestion.normalization import DEFAULT_OPTIONS, NormalizationOptions

from .base import IngestionAdapter
from .pdf_adapter import PDFAdapter

logger = logging.getLogger(__name__)

try:
    from .epub_adapter import EPUBAdapter
except ImportError:
    EPUBAdapter = None
    logger.warning("EPUB support unavailable: install 'lxml' and 'beautifulsoup4'")


def build_default_adapters(options: NormalizationOptions = DEFAULT_OPTIONS) -> dict[DocumentKind, IngestionAdapter]:
    """Return the default format adapter map keyed by document kind."""
    adapters: dict[DocumentKind, IngestionAdapter] = {DocumentKind.PDF: PDFAdapter(options)}
    if EPUBAdapter is not None:
        adapters[DocumentKind.EPUB] = EPUBAdapter(options)
    return adapters


__all__ = [
    "IngestionAdapter",
    "PDFAdapter",
    "EPUBAdapter",
    "build_default_adapters",
]
