"""Runtime configuration for the book library and import pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Mapping

from readfast.ingestion.normalization import NormalizationOptions


DEFAULT_DB_PATH = ".readfast-library.db"
DEFAULT_BOOKS_PATH = "books"
DEFAULT_READING_WPM = 300

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

_NORMALIZATION_VARIABLES = {
    "remove_page_numbers": "READFAST_REMOVE_PAGE_NUMBERS",
    "remove_chapter_markers": "READFAST_REMOVE_CHAPTER_MARKERS",
    "remove_headers": "READFAST_REMOVE_HEADERS",
    "collapse_whitespace": "READFAST_COLLAPSE_WHITESPACE",
    "handle_hyphenation": "READFAST_HANDLE_HYPHENATION",
}


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    value = int(raw_value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_bool(*, name: str, raw_value: str) -> bool:
    lowered = raw_value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag (1/0, true/false, yes/no, on/off)")


@dataclass(frozen=True, slots=True)
class LibrarySettings:
    """Validated library runtime settings."""

    db_path: Path = Path(DEFAULT_DB_PATH)
    books_path: Path = Path(DEFAULT_BOOKS_PATH)
    reading_wpm: int = DEFAULT_READING_WPM
    normalization: NormalizationOptions = field(default_factory=NormalizationOptions)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LibrarySettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        db_path_raw = source.get("READFAST_DB_PATH", DEFAULT_DB_PATH).strip()
        if not db_path_raw:
            raise ValueError("READFAST_DB_PATH cannot be empty")

        books_path_raw = source.get("READFAST_BOOKS_PATH", DEFAULT_BOOKS_PATH).strip()
        if not books_path_raw:
            raise ValueError("READFAST_BOOKS_PATH cannot be empty")

        wpm_raw = source.get("READFAST_READING_WPM", str(DEFAULT_READING_WPM)).strip()
        if not wpm_raw:
            raise ValueError("READFAST_READING_WPM cannot be empty")
        reading_wpm = _parse_positive_int(name="READFAST_READING_WPM", raw_value=wpm_raw, minimum=1)

        toggles: dict[str, bool] = {}
        for option, variable in _NORMALIZATION_VARIABLES.items():
            raw_value = source.get(variable, "true").strip()
            if not raw_value:
                raise ValueError(f"{variable} cannot be empty")
            toggles[option] = _parse_bool(name=variable, raw_value=raw_value)

        return cls(
            db_path=Path(db_path_raw),
            books_path=Path(books_path_raw),
            reading_wpm=reading_wpm,
            normalization=NormalizationOptions(**toggles),
        )
