"""Read-only zip archive access where a missing entry is a normal outcome."""

from __future__ import annotations

import codecs
from io import BytesIO
import logging
from urllib.parse import unquote
from zipfile import BadZipFile, ZipFile
import zlib

from charset_normalizer import from_bytes

from readfast.ingestion.errors import StructureError

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"


def decode_text(raw: bytes) -> str:
    """Decode markup bytes, preferring UTF-8 and falling back to detection."""

    if raw.startswith(codecs.BOM_UTF8):
        return raw[len(codecs.BOM_UTF8) :].decode("utf-8", errors="replace")
    if raw.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return raw.decode("utf-16", errors="replace")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass

    best = from_bytes(raw).best()
    if best and best.encoding:
        return raw.decode(best.encoding, errors="replace")
    return raw.decode("latin-1")


class ArchiveReader:
    """Zip archive wrapper returning ``None`` for absent entries."""

    def __init__(self, raw: bytes, *, source: str | None = None) -> None:
        try:
            self._zip = ZipFile(BytesIO(raw), "r")
        except BadZipFile as exc:
            raise StructureError(f"Unreadable archive: {exc}", source) from exc
        self._names = set(self._zip.namelist())

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def names(self) -> list[str]:
        return self._zip.namelist()

    def _resolve(self, name: str) -> str | None:
        if name in self._names:
            return name
        unquoted = unquote(name)
        if unquoted in self._names:
            return unquoted
        return None

    def read_bytes(self, name: str) -> bytes | None:
        entry = self._resolve(name)
        if entry is None:
            return None
        try:
            return self._zip.read(entry)
        except (BadZipFile, OSError, RuntimeError, NotImplementedError, zlib.error) as exc:
            logger.debug("Archive entry %s could not be read: %s", entry, exc)
            return None

    def read_text(self, name: str) -> str | None:
        raw = self.read_bytes(name)
        if raw is None:
            return None
        return decode_text(raw)
