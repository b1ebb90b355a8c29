"""PDF adapter recovering reading text from uncompressed content streams.

This is a heuristic scanner, not a PDF object parser: it walks text objects
(``BT`` ... ``ET``) with a small content-stream lexer and collects the
operands of the show-text operators, then sweeps the whole file for any
remaining string literals that look like readable text.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
import logging
from pathlib import Path
import re
from typing import Iterator

from readfast.ingestion.errors import ExtractionError
from readfast.ingestion.models import DocumentMetadata, ParsedDocument
from readfast.ingestion.normalization import (
    DEFAULT_OPTIONS,
    UNTITLED,
    NormalizationOptions,
    extract_title,
    normalize_text,
    tokenize_words,
)

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
MIN_TEXT_CHARS = 50
PRINTABLE_RATIO = 0.7

_WHITESPACE = " \t\r\n\f\x00"
_DELIMITERS = "()<>[]{}/%"
_SHOW_TEXT_OPERATORS = {"Tj", "'", '"'}

_BEGIN_TEXT_RE = re.compile(r"(?<![^\s()<>\[\]{}/%])BT(?![^\s()<>\[\]{}/%])")
_FALLBACK_LITERAL_RE = re.compile(r"\(((?:\\.|[^\\()])+)\)", re.DOTALL)
_FALLBACK_HEX_RE = re.compile(r"<([0-9A-Fa-f][0-9A-Fa-f\s]*)>")
_ESCAPE_RE = re.compile(r"\\(?:([0-7]{3})|(\r\n|\r|\n)|(.))", re.DOTALL)
_SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "(": "(",
    ")": ")",
    "\\": "\\",
}
_NON_HEX_RE = re.compile(r"[^0-9A-Fa-f]")
_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)")


@dataclass(slots=True)
class _Token:
    kind: str
    value: str
    start: int
    end: int


def _replace_escape(match: re.Match[str]) -> str:
    octal, line_break, char = match.groups()
    if octal is not None:
        return chr(int(octal, 8) & 0xFF)
    if line_break is not None:
        return ""
    return _SIMPLE_ESCAPES.get(char, match.group(0))


def decode_literal(value: str) -> str:
    """Resolve backslash escapes inside a PDF literal string body."""

    return _ESCAPE_RE.sub(_replace_escape, value)


def decode_hex(value: str) -> str:
    """Decode a hex string body two digits per character, dropping NULs."""

    digits = _NON_HEX_RE.sub("", value)
    if len(digits) % 2:
        digits += "0"
    chars: list[str] = []
    for index in range(0, len(digits), 2):
        code = int(digits[index : index + 2], 16)
        if code:
            chars.append(chr(code))
    return "".join(chars)


def is_printable_text(text: str) -> bool:
    """Return True when most characters fall in readable Latin/Cyrillic ranges."""

    if not text:
        return False
    printable = 0
    for char in text:
        code = ord(char)
        if (
            32 <= code <= 126
            or 160 <= code <= 255
            or 0x0100 <= code <= 0x024F
            or 0x0400 <= code <= 0x04FF
        ):
            printable += 1
    return printable / len(text) >= PRINTABLE_RATIO


def _literal_end(data: str, start: int) -> int | None:
    """Return the index just past a balanced literal opening at ``start``."""

    depth = 0
    index = start
    length = len(data)
    while index < length:
        char = data[index]
        if char == "\\":
            index += 2
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return None


def _iter_tokens(data: str, pos: int) -> Iterator[_Token]:
    length = len(data)
    while pos < length:
        char = data[pos]
        if char in _WHITESPACE:
            pos += 1
            continue
        if char == "%":
            newline = data.find("\n", pos)
            pos = length if newline == -1 else newline + 1
            continue
        if char == "(":
            end = _literal_end(data, pos)
            if end is None:
                # An unterminated string swallows the rest of the file.
                return
            yield _Token("literal", data[pos + 1 : end - 1], pos, end)
            pos = end
            continue
        if char == "<":
            if data.startswith("<<", pos):
                pos += 2
                continue
            end = data.find(">", pos)
            if end == -1:
                return
            yield _Token("hex", data[pos + 1 : end], pos, end + 1)
            pos = end + 1
            continue
        if char == "[":
            yield _Token("array_start", char, pos, pos + 1)
            pos += 1
            continue
        if char == "]":
            yield _Token("array_end", char, pos, pos + 1)
            pos += 1
            continue
        if char in ">{}":
            pos += 1
            continue

        start = pos
        pos += 1
        while pos < length and data[pos] not in _WHITESPACE and data[pos] not in _DELIMITERS:
            pos += 1
        word = data[start:pos]
        if char == "/":
            yield _Token("name", word, start, pos)
        elif _NUMBER_RE.fullmatch(word):
            yield _Token("number", word, start, pos)
        else:
            yield _Token("operator", word, start, pos)


def _scan_text_object(data: str, start: int) -> tuple[str, list[tuple[int, int]], int]:
    """Collect show-text operands from ``start`` up to the closing ``ET``."""

    parts: list[str] = []
    consumed: list[tuple[int, int]] = []
    operands: list[_Token | list[_Token]] = []
    array: list[_Token] | None = None

    for token in _iter_tokens(data, start):
        if token.kind == "array_start":
            array = []
            continue
        if token.kind == "array_end":
            operands.append(array if array is not None else [])
            array = None
            continue
        if token.kind != "operator":
            if array is not None:
                if token.kind == "literal":
                    array.append(token)
            else:
                operands.append(token)
            continue

        operator = token.value
        if operator in {"ET", "BT", "endstream"}:
            return "".join(parts), consumed, token.start if operator != "ET" else token.end

        last = operands[-1] if operands else None
        if operator in _SHOW_TEXT_OPERATORS and isinstance(last, _Token) and last.kind == "literal":
            parts.append(decode_literal(last.value))
            consumed.append((last.start, last.end))
        elif operator == "TJ" and isinstance(last, list):
            for literal in last:
                parts.append(decode_literal(literal.value))
                consumed.append((literal.start, literal.end))
        operands.clear()
        array = None

    return "".join(parts), consumed, len(data)


def _text_object_fragments(data: str) -> tuple[list[str], list[tuple[int, int]]]:
    fragments: list[str] = []
    consumed: list[tuple[int, int]] = []
    pos = 0
    while True:
        match = _BEGIN_TEXT_RE.search(data, pos)
        if match is None:
            break
        text, spans, end = _scan_text_object(data, match.end())
        if text:
            fragments.append(text)
        consumed.extend(spans)
        pos = max(end, match.end())
    return fragments, consumed


def _inside_spans(position: int, starts: list[int], spans: list[tuple[int, int]]) -> bool:
    index = bisect_right(starts, position) - 1
    return index >= 0 and spans[index][0] <= position < spans[index][1]


def _fallback_literals(data: str, consumed: list[tuple[int, int]]) -> list[str]:
    spans = sorted(consumed)
    starts = [span[0] for span in spans]
    fragments: list[str] = []
    for match in _FALLBACK_LITERAL_RE.finditer(data):
        if _inside_spans(match.start(), starts, spans):
            continue
        content = match.group(1)
        if len(content) > 2 and is_printable_text(content):
            fragments.append(decode_literal(content))
    return fragments


def _fallback_hex_strings(data: str) -> list[str]:
    fragments: list[str] = []
    for match in _FALLBACK_HEX_RE.finditer(data):
        body = match.group(1)
        if len(_NON_HEX_RE.sub("", body)) <= 4:
            continue
        decoded = decode_hex(body)
        if len(decoded) > 2 and is_printable_text(decoded):
            fragments.append(decoded)
    return fragments


def extract_text(raw: bytes) -> str:
    """Recover raw, un-normalized text from PDF bytes.

    Fragments are ordered: text-object operands first, then stray literal
    strings, then hex strings.
    """

    data = raw.decode("latin-1")
    operator_text, consumed = _text_object_fragments(data)
    literals = _fallback_literals(data, consumed)
    hex_strings = _fallback_hex_strings(data)
    logger.debug(
        "PDF scan found %d text objects, %d fallback literals, %d hex strings",
        len(operator_text),
        len(literals),
        len(hex_strings),
    )
    return " ".join([*operator_text, *literals, *hex_strings])


class PDFAdapter:
    """Extract a flat word sequence from text-based PDF files."""

    def __init__(self, options: NormalizationOptions = DEFAULT_OPTIONS) -> None:
        self._options = options

    def supports(self, path: Path, sniffed_bytes: bytes | None = None) -> bool:
        if path.suffix.lower() == ".pdf":
            return True
        if sniffed_bytes is None:
            return False
        return sniffed_bytes.startswith(PDF_MAGIC)

    def parse(self, raw: bytes, *, source: str | None = None) -> ParsedDocument:
        normalized = normalize_text(extract_text(raw), self._options).strip()
        if len(normalized) < MIN_TEXT_CHARS:
            raise ExtractionError(
                "Could not extract text from PDF: likely image-based or scanned document",
                source,
            )

        title = extract_title(normalized)
        metadata = DocumentMetadata(title=None if title == UNTITLED else title)
        return ParsedDocument(metadata=metadata, words=tokenize_words(normalized), chapters=[])
