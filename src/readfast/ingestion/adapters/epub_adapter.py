"""EPUB adapter resolving spine reading order and table-of-contents titles.

Only the package structure needed for linear reading is read: the
container, the OPF package (metadata, manifest, spine) and the NCX / nav
tables of contents. Elements are matched by local name, so namespace
prefixes and attribute order do not matter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path, PurePosixPath
import posixpath
import re
from typing import Iterator
from urllib.parse import unquote

from bs4 import BeautifulSoup
from lxml import etree

from readfast.ingestion.archive import ZIP_MAGIC, ArchiveReader
from readfast.ingestion.errors import StructureError
from readfast.ingestion.models import Chapter, DocumentMetadata, ParsedDocument
from readfast.ingestion.normalization import (
    DEFAULT_OPTIONS,
    NormalizationOptions,
    normalize_text,
    normalize_whitespace,
    strip_html_tags,
    tokenize_words,
)

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
MIN_CHAPTER_WORDS = 11
START_CHAPTER_TITLE = "Start"

_EXTENSION_RE = re.compile(r"\.[^.]+$")
_SEPARATOR_RE = re.compile(r"[-_]")


@dataclass(frozen=True, slots=True)
class ManifestItem:
    href: str
    media_type: str | None = None
    properties: tuple[str, ...] = ()


@dataclass(slots=True)
class PackageDocument:
    """Resolved OPF package: where it lives and what it declares."""

    opf_path: str
    metadata: DocumentMetadata
    manifest: dict[str, ManifestItem] = field(default_factory=dict)
    spine: list[str] = field(default_factory=list)

    @property
    def opf_dir(self) -> str:
        return posixpath.dirname(self.opf_path)


def _local_name(element: etree._Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1].lower()


def _iter_named(root: etree._Element, name: str) -> Iterator[etree._Element]:
    for element in root.iter():
        if _local_name(element) == name:
            yield element


def _first_named(root: etree._Element, name: str) -> etree._Element | None:
    return next(_iter_named(root, name), None)


def _attribute(element: etree._Element, name: str) -> str | None:
    value = element.get(name)
    if value is not None:
        return value
    for key, candidate in element.attrib.items():
        if key.rsplit("}", 1)[-1].rsplit(":", 1)[-1] == name:
            return candidate
    return None


def _element_text(element: etree._Element | None) -> str | None:
    if element is None:
        return None
    return normalize_whitespace("".join(element.itertext())) or None


def _parse_xml(payload: bytes | None) -> etree._Element | None:
    if not payload:
        return None
    parser = etree.XMLParser(
        recover=True,
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )
    try:
        return etree.fromstring(payload, parser=parser)
    except (etree.XMLSyntaxError, ValueError):
        return None


def _join(directory: str, href: str) -> str:
    href = href.lstrip("/")
    joined = posixpath.join(directory, href) if directory else href
    return posixpath.normpath(joined)


def _href_key(href: str) -> str | None:
    """Normalize an href into the form used to match TOC entries to files."""

    path = unquote(href.split("#", 1)[0])
    if not path:
        return None
    return posixpath.normpath(path)


def _toc_key(base: str, href: str | None) -> str | None:
    if not href:
        return None
    target = href.split("#", 1)[0]
    if not target:
        return None
    return _href_key(_join(base, target))


def fallback_chapter_title(href: str, position: int) -> str:
    """Derive a chapter title from its file name, or number it."""

    filename = unquote(PurePosixPath(href).name) or href
    name = _SEPARATOR_RE.sub(" ", _EXTENSION_RE.sub("", filename))
    if "chap" in name.lower():
        return name[:1].upper() + name[1:]
    return f"Chapter {position}"


def _is_toc_nav(tag) -> bool:
    if tag.name != "nav":
        return False
    for key, value in tag.attrs.items():
        if str(key).rsplit(":", 1)[-1] == "type" and "toc" in str(value).split():
            return True
    return False


class EPUBAdapter:
    """Extract words and chapter offsets from EPUB documents in spine order."""

    def __init__(self, options: NormalizationOptions = DEFAULT_OPTIONS) -> None:
        self._options = options

    def supports(self, path: Path, sniffed_bytes: bytes | None = None) -> bool:
        if path.suffix.lower() == ".epub":
            return True
        if sniffed_bytes is None:
            return False
        return sniffed_bytes.startswith(ZIP_MAGIC)

    def parse(self, raw: bytes, *, source: str | None = None) -> ParsedDocument:
        with ArchiveReader(raw, source=source) as archive:
            package = self._read_package(archive, source)
            titles = self._toc_titles(archive, package)
            words, chapters = self._read_chapters(archive, package, titles)

        logger.debug(
            "EPUB %s: %d spine entries, %d chapters, %d words",
            source or "<bytes>",
            len(package.spine),
            len(chapters),
            len(words),
        )
        return ParsedDocument(metadata=package.metadata, words=words, chapters=chapters)

    def _read_package(self, archive: ArchiveReader, source: str | None) -> PackageDocument:
        container_bytes = archive.read_bytes(CONTAINER_PATH)
        if container_bytes is None:
            raise StructureError("Invalid EPUB: missing META-INF/container.xml", source)
        container = _parse_xml(container_bytes)
        if container is None:
            raise StructureError("Invalid EPUB: unparsable META-INF/container.xml", source)

        opf_path = next(
            (path for path in (_attribute(node, "full-path") for node in _iter_named(container, "rootfile")) if path),
            None,
        )
        if not opf_path:
            raise StructureError("Could not find OPF path in container.xml", source)

        opf_bytes = archive.read_bytes(opf_path)
        if opf_bytes is None:
            raise StructureError(f"Invalid EPUB: missing OPF file {opf_path}", source)
        opf = _parse_xml(opf_bytes)
        if opf is None:
            raise StructureError(f"Invalid EPUB: unparsable OPF file {opf_path}", source)

        return PackageDocument(
            opf_path=opf_path,
            metadata=self._extract_metadata(opf),
            manifest=self._extract_manifest(opf),
            spine=self._extract_spine(opf),
        )

    def _extract_metadata(self, opf: etree._Element) -> DocumentMetadata:
        scope = _first_named(opf, "metadata")
        if scope is None:
            scope = opf
        return DocumentMetadata(
            title=_element_text(_first_named(scope, "title")),
            author=_element_text(_first_named(scope, "creator")),
        )

    def _extract_manifest(self, opf: etree._Element) -> dict[str, ManifestItem]:
        manifest: dict[str, ManifestItem] = {}
        scope = _first_named(opf, "manifest")
        if scope is None:
            return manifest

        for node in _iter_named(scope, "item"):
            item_id = _attribute(node, "id")
            href = _attribute(node, "href")
            if not item_id or not href:
                continue
            # Duplicate ids: the later declaration wins.
            manifest[item_id] = ManifestItem(
                href=href,
                media_type=_attribute(node, "media-type"),
                properties=tuple((_attribute(node, "properties") or "").split()),
            )
        return manifest

    def _extract_spine(self, opf: etree._Element) -> list[str]:
        scope = _first_named(opf, "spine")
        if scope is None:
            return []
        return [idref for idref in (_attribute(node, "idref") for node in _iter_named(scope, "itemref")) if idref]

    def _toc_titles(self, archive: ArchiveReader, package: PackageDocument) -> dict[str, str]:
        """Map chapter hrefs to TOC labels; nav entries override NCX entries."""

        titles: dict[str, str] = {}
        items = list(package.manifest.values())

        ncx_item = next((item for item in items if item.media_type == NCX_MEDIA_TYPE), None)
        if ncx_item is not None:
            titles.update(self._ncx_titles(archive, package, ncx_item))

        nav_item = next((item for item in items if "nav" in item.properties), None)
        if nav_item is not None:
            titles.update(self._nav_titles(archive, package, nav_item))

        return titles

    def _ncx_titles(self, archive: ArchiveReader, package: PackageDocument, item: ManifestItem) -> dict[str, str]:
        root = _parse_xml(archive.read_bytes(_join(package.opf_dir, item.href)))
        if root is None:
            logger.debug("NCX %s missing or unparsable", item.href)
            return {}

        base = posixpath.dirname(item.href)
        titles: dict[str, str] = {}
        for nav_point in _iter_named(root, "navpoint"):
            title = _element_text(_first_named(nav_point, "text"))
            content = _first_named(nav_point, "content")
            src = _attribute(content, "src") if content is not None else None
            key = _toc_key(base, src)
            if title and key:
                titles[key] = title
        return titles

    def _nav_titles(self, archive: ArchiveReader, package: PackageDocument, item: ManifestItem) -> dict[str, str]:
        payload = archive.read_bytes(_join(package.opf_dir, item.href))
        if not payload:
            logger.debug("Nav document %s missing", item.href)
            return {}

        soup = BeautifulSoup(payload, "xml")
        toc = soup.find(_is_toc_nav)
        if toc is None:
            return {}

        base = posixpath.dirname(item.href)
        titles: dict[str, str] = {}
        for anchor in toc.find_all("a"):
            title = normalize_whitespace(anchor.get_text(" ", strip=True))
            key = _toc_key(base, anchor.get("href"))
            if title and key:
                titles[key] = title
        return titles

    def _read_chapters(
        self,
        archive: ArchiveReader,
        package: PackageDocument,
        titles: dict[str, str],
    ) -> tuple[list[str], list[Chapter]]:
        """Walk the spine in order, accumulating words and chapter offsets.

        Each accepted chapter starts at the running word count, so entries
        must be processed strictly in spine order.
        """

        words: list[str] = []
        chapters: list[Chapter] = []

        for idref in package.spine:
            item = package.manifest.get(idref)
            if item is None:
                logger.debug("Spine entry %s has no manifest item", idref)
                continue

            path = _join(package.opf_dir, item.href)
            markup = archive.read_text(path)
            if markup is None:
                logger.debug("Skipping missing spine file %s", path)
                continue

            chapter_words = tokenize_words(normalize_text(strip_html_tags(markup), self._options))
            if len(chapter_words) < MIN_CHAPTER_WORDS:
                continue

            key = _href_key(item.href)
            title = (titles.get(key) if key else None) or fallback_chapter_title(item.href, len(chapters) + 1)
            chapters.append(Chapter(title=title, start_index=len(words)))
            words.extend(chapter_words)

        if not chapters and words:
            chapters.append(Chapter(title=START_CHAPTER_TITLE, start_index=0))

        return words, chapters
