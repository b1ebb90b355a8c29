"""Resolve user-selected files into typed documents ready for import."""

from __future__ import annotations

import logging
from pathlib import Path

from readfast.ingestion.adapters import build_default_adapters
from readfast.ingestion.models import DocumentKind, PickedDocument

logger = logging.getLogger(__name__)

SNIFF_BYTES = 8

MIME_TYPES: dict[DocumentKind, str] = {
    DocumentKind.EPUB: "application/epub+zip",
    DocumentKind.PDF: "application/pdf",
}

SUPPORTED_SUFFIXES: dict[str, DocumentKind] = {
    ".epub": DocumentKind.EPUB,
    ".pdf": DocumentKind.PDF,
}


def _kind_from_declared(name: str, mime_type: str | None) -> DocumentKind | None:
    suffix = Path(name).suffix.lower()
    for kind in (DocumentKind.EPUB, DocumentKind.PDF):
        if mime_type == MIME_TYPES[kind] or SUPPORTED_SUFFIXES.get(suffix) is kind:
            return kind
    return None


def _kind_from_content(path: Path) -> DocumentKind | None:
    with path.open("rb") as handle:
        sniffed = handle.read(SNIFF_BYTES)
    for kind, adapter in build_default_adapters().items():
        if adapter.supports(path, sniffed):
            return kind
    return None


def resolve_document(path: str | Path, mime_type: str | None = None) -> PickedDocument | None:
    """Determine the kind of a picked file, or return ``None`` when unsupported.

    The declared MIME type and the file extension are checked first; files
    that carry neither are identified by their leading magic bytes.
    """

    source = Path(path)
    kind = _kind_from_declared(source.name, mime_type) or _kind_from_content(source)
    if kind is None:
        logger.warning("Unknown document type: %s %s", mime_type or "-", source.name)
        return None

    return PickedDocument(
        path=source,
        name=source.name,
        kind=kind,
        size=source.stat().st_size,
    )
