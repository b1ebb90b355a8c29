"""Durable copies of imported source documents."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import shutil

from readfast.ingestion.models import PickedDocument


logger = logging.getLogger(__name__)


class DocumentStore:
    """Copy picked documents into the books directory and remove them later."""

    def __init__(self, books_dir: str | Path) -> None:
        self._books_dir = Path(books_dir)

    @property
    def books_dir(self) -> Path:
        return self._books_dir

    def target_path(self, picked: PickedDocument, book_id: str) -> Path:
        return self._books_dir / f"{book_id}.{picked.kind.value}"

    async def store(self, picked: PickedDocument, book_id: str) -> Path:
        """Copy the picked file into the books directory; errors propagate."""

        target = self.target_path(picked, book_id)
        await asyncio.to_thread(self._copy, picked.path, target)
        logger.debug("Stored %s as %s", picked.name, target)
        return target

    def delete(self, path: str | Path) -> None:
        """Remove a stored document; a missing file is not an error."""

        try:
            Path(path).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Failed to delete book file %s: %s", path, exc)

    @staticmethod
    def _copy(source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
