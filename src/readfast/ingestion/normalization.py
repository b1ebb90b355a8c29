"""Text normalization and tokenization for extracted document text.

Stages run in a fixed order because later stages depend on earlier ones:
hyphenation repair needs the line breaks that whitespace collapse removes,
and it must join fragments before numeral/marker stripping sees them.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

UNTITLED = "Untitled"

_WHITESPACE_RE = re.compile(r"\s+")

_HYPHENATION_RE = re.compile(r"(\w+)-\s*\n\s*(\w+)")

# Line-anchored patterns tolerate indentation and trailing blanks, plus a
# trailing "\r" so CRLF text behaves like LF text.
_LINE_FLAGS = re.IGNORECASE | re.MULTILINE


def _line(body: str, flags: int = _LINE_FLAGS) -> re.Pattern[str]:
    return re.compile(rf"^[^\S\r\n]*{body}[^\S\r\n]*\r?$", flags)


_PAGE_NUMBER_PATTERNS = (
    _line(r"(?:page[^\S\r\n]+)?\d{1,4}"),
    _line(r"[-—–][^\S\r\n]*\d{1,4}[^\S\r\n]*[-—–]", re.MULTILINE),
    _line(r"\[\d{1,4}\]", re.MULTILINE),
    _line(r"\(\d{1,4}\)", re.MULTILINE),
    _line(r"p\.[^\S\r\n]*\d{1,4}"),
)

_CHAPTER_MARKER_PATTERNS = (
    _line(r"(?:chapter|capítulo|cap\.?)[^\S\r\n]*\d+"),
    _line(r"[ivxlcdm]+"),
    _line(r"part[^\S\r\n]+\d+"),
    _line(r"section[^\S\r\n]+\d+"),
)

_HEADER_FOOTER_PATTERNS = (
    _line(r"(?:copyright|©)[^\r\n]*"),
    _line(r"all rights reserved[^\r\n]*"),
    _line(r"isbn[ \t:-]*[\d-]+"),
)

_HORIZONTAL_SPACE_RE = re.compile(r"[ \t]+")
_SPACE_AROUND_NEWLINE_RE = re.compile(r" ?\n ?")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_ENTITY_RE = re.compile(r"&(?:#\d+|#x[0-9a-f]+|[a-z][a-z0-9]*);", re.IGNORECASE)
_KNOWN_ENTITIES = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
}

_NUMERIC_TOKEN_RE = re.compile(r"[0-9]+")
_TITLE_NOISE_RE = re.compile(r"^[\d\[\]()—–-]+$")
_TITLE_SKIP_PREFIX_RE = re.compile(r"^(?:page|chapter|copyright)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class NormalizationOptions:
    """Independently togglable normalization stages."""

    remove_page_numbers: bool = True
    remove_chapter_markers: bool = True
    remove_headers: bool = True
    collapse_whitespace: bool = True
    handle_hyphenation: bool = True


DEFAULT_OPTIONS = NormalizationOptions()


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def _remove_lines(text: str, patterns: tuple[re.Pattern[str], ...]) -> str:
    for pattern in patterns:
        text = pattern.sub("", text)
    return text


def repair_hyphenation(text: str) -> str:
    """Join words split across a line break with a trailing hyphen."""

    return _HYPHENATION_RE.sub(r"\1\2", text)


def collapse_whitespace(text: str) -> str:
    """Normalize line endings and squeeze whitespace runs."""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_SPACE_RE.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE_RE.sub("\n", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def normalize_text(text: str, options: NormalizationOptions = DEFAULT_OPTIONS) -> str:
    """Clean raw extracted text of layout artifacts for sequential reading."""

    result = text
    if options.handle_hyphenation:
        result = repair_hyphenation(result)
    if options.remove_page_numbers:
        result = _remove_lines(result, _PAGE_NUMBER_PATTERNS)
    if options.remove_chapter_markers:
        result = _remove_lines(result, _CHAPTER_MARKER_PATTERNS)
    if options.remove_headers:
        result = _remove_lines(result, _HEADER_FOOTER_PATTERNS)
    if options.collapse_whitespace:
        result = collapse_whitespace(result)
    return result


def tokenize_words(text: str) -> list[str]:
    """Split text into reading tokens, keeping punctuation attached.

    Bare numerals that survived line-based cleanup are dropped.
    """

    return [word for word in text.split() if not _NUMERIC_TOKEN_RE.fullmatch(word)]


def extract_title(text: str, max_length: int = 50) -> str:
    """Return the first line that plausibly reads as a title."""

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if len(line) < 3:
            continue
        if _TITLE_NOISE_RE.match(line):
            continue
        if _TITLE_SKIP_PREFIX_RE.match(line):
            continue
        if len(line) > max_length:
            return line[: max_length - 3] + "..."
        return line
    return UNTITLED


def _decode_entity(match: re.Match[str]) -> str:
    return _KNOWN_ENTITIES.get(match.group(0).lower(), " ")


def strip_html_tags(html: str) -> str:
    """Reduce (X)HTML markup to plain text.

    Tags become a single space so adjacent words in different elements do
    not run together.
    """

    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _ENTITY_RE.sub(_decode_entity, text)
