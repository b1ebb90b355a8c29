"""CLI command importing EPUB/PDF files into the reading library."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import json
import logging
from pathlib import Path
import sqlite3

from dotenv import load_dotenv

from readfast.config import LibrarySettings
from readfast.ingestion.documents import SUPPORTED_SUFFIXES, resolve_document
from readfast.ingestion.errors import IngestionError
from readfast.ingestion.ingestor import DocumentIngestor, build_default_ingestor
from readfast.ingestion.models import ImportProgress


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _collect_inputs(target: Path) -> list[Path]:
    if target.is_file():
        return [target]
    if target.is_dir():
        return sorted(
            path for path in target.rglob("*") if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES
        )
    return []


def _log_progress(progress: ImportProgress) -> None:
    LOGGER.info("[%s] %s", progress.stage.value, progress.message)


async def _import_all(ingestor: DocumentIngestor, files: list[Path]) -> tuple[list[dict[str, object]], list[dict[str, str]]]:
    results: list[dict[str, object]] = []
    errors: list[dict[str, str]] = []

    for file_path in files:
        picked = resolve_document(file_path)
        if picked is None:
            errors.append({"source_path": str(file_path), "error": "Unsupported document type"})
            continue

        try:
            record = await ingestor.import_document(picked, on_progress=_log_progress)
        except (IngestionError, OSError, sqlite3.Error) as exc:
            errors.append({"source_path": str(file_path), "error": str(exc)})
            continue

        results.append(
            {
                "source_path": str(file_path),
                "id": record.id,
                "title": record.title,
                "author": record.author,
                "format": record.kind.value,
                "word_count": record.word_count,
                "chapter_count": len(record.chapters or []),
                "storage_location": record.storage_location,
            }
        )

    return results, errors


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Import EPUB/PDF books into the reading library")
    parser.add_argument("--path", required=True, help="Source file or directory")
    parser.add_argument("--db-path", default=None, help="SQLite library path (overrides READFAST_DB_PATH)")
    parser.add_argument(
        "--books-path",
        default=None,
        help="Directory for copied documents (overrides READFAST_BOOKS_PATH)",
    )
    args = parser.parse_args(argv)

    try:
        settings = LibrarySettings.from_env()
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    if args.db_path:
        settings = replace(settings, db_path=Path(args.db_path))
    if args.books_path:
        settings = replace(settings, books_path=Path(args.books_path))

    source_path = Path(args.path)
    files = _collect_inputs(source_path)

    ingestor = build_default_ingestor(settings)
    try:
        results, errors = asyncio.run(_import_all(ingestor, files))
    finally:
        ingestor.repository.close()

    payload = {
        "path": str(source_path),
        "processed": len(results),
        "results": results,
        "errors": errors,
    }
    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 0 if not errors else 1


if __name__ == "__main__":
    raise SystemExit(main())
