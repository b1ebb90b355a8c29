from __future__ import annotations

from io import BytesIO
from pathlib import Path
import zipfile

from ebooklib import epub
import pytest

from readfast.ingestion.adapters.epub_adapter import EPUBAdapter, fallback_chapter_title
from readfast.ingestion.errors import StructureError
from readfast.ingestion.models import Chapter

CONTAINER = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

NCX = """<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <navMap>
    <navPoint id="p1" playOrder="1">
      <navLabel><text>Alpha</text></navLabel>
      <content src="text/a.xhtml#start"/>
    </navPoint>
    <navPoint id="p2" playOrder="2">
      <navLabel><text>Beta</text></navLabel>
      <content src="text/b.xhtml"/>
    </navPoint>
  </navMap>
</ncx>
"""


def _words(count: int, stem: str = "word") -> str:
    return " ".join(f"{stem}{index}" for index in range(count))


def _xhtml(body: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<html xmlns="http://www.w3.org/1999/xhtml"><body>'
        f"<p>{body}</p>"
        "</body></html>"
    )


def _opf(manifest: str, spine: str, *, metadata: str | None = None) -> str:
    if metadata is None:
        metadata = "<dc:title>Test Book</dc:title><dc:creator>Jane Doe</dc:creator>"
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">{metadata}</metadata>
  <manifest>{manifest}</manifest>
  <spine toc="ncx">{spine}</spine>
</package>
"""


def _item(item_id: str, href: str, media_type: str = "application/xhtml+xml", properties: str = "") -> str:
    extra = f' properties="{properties}"' if properties else ""
    return f'<item id="{item_id}" href="{href}" media-type="{media_type}"{extra}/>'


def _itemrefs(*ids: str) -> str:
    return "".join(f'<itemref idref="{item_id}"/>' for item_id in ids)


def _build_epub(entries: dict[str, str], *, container: str | None = CONTAINER) -> bytes:
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("mimetype", "application/epub+zip")
        if container is not None:
            archive.writestr("META-INF/container.xml", container)
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def _two_chapter_entries(**extra: str) -> dict[str, str]:
    manifest = (
        _item("ncx", "toc.ncx", "application/x-dtbncx+xml")
        + _item("a", "text/a.xhtml")
        + _item("b", "text/b.xhtml")
    )
    entries = {
        "OEBPS/content.opf": _opf(manifest, _itemrefs("a", "b")),
        "OEBPS/toc.ncx": NCX,
        "OEBPS/text/a.xhtml": _xhtml(_words(15, "alpha")),
        "OEBPS/text/b.xhtml": _xhtml(_words(20, "beta")),
    }
    entries.update(extra)
    return entries


def test_two_chapter_spine_yields_offsets_and_total_word_count() -> None:
    document = EPUBAdapter().parse(_build_epub(_two_chapter_entries()))

    assert document.chapters == [Chapter("Alpha", 0), Chapter("Beta", 15)]
    assert document.word_count == 35
    assert document.words[0] == "alpha0"
    assert document.words[15] == "beta0"
    assert document.metadata.title == "Test Book"
    assert document.metadata.author == "Jane Doe"


def test_short_chapters_are_dropped_before_offsets_are_assigned() -> None:
    manifest = (
        _item("a", "text/a.xhtml")
        + _item("ten", "text/ten.xhtml")
        + _item("eleven", "text/eleven.xhtml")
        + _item("b", "text/b.xhtml")
    )
    entries = {
        "OEBPS/content.opf": _opf(manifest, _itemrefs("a", "ten", "eleven", "b")),
        "OEBPS/text/a.xhtml": _xhtml(_words(15, "alpha")),
        "OEBPS/text/ten.xhtml": _xhtml(_words(10, "short")),
        "OEBPS/text/eleven.xhtml": _xhtml(_words(11, "kept")),
        "OEBPS/text/b.xhtml": _xhtml(_words(20, "beta")),
    }

    document = EPUBAdapter().parse(_build_epub(entries))

    assert [chapter.start_index for chapter in document.chapters] == [0, 15, 26]
    assert document.word_count == 15 + 11 + 20
    assert not any(word.startswith("short") for word in document.words)


def test_chapter_offsets_start_at_zero_and_strictly_increase() -> None:
    manifest = "".join(_item(f"c{index}", f"text/c{index}.xhtml") for index in range(5))
    entries = {"OEBPS/content.opf": _opf(manifest, _itemrefs(*(f"c{index}" for index in range(5))))}
    for index in range(5):
        entries[f"OEBPS/text/c{index}.xhtml"] = _xhtml(_words(12 + index))

    document = EPUBAdapter().parse(_build_epub(entries))

    starts = [chapter.start_index for chapter in document.chapters]
    assert starts[0] == 0
    assert all(earlier < later for earlier, later in zip(starts, starts[1:]))
    assert document.word_count == sum(12 + index for index in range(5))


def test_attribute_order_and_namespace_prefixes_do_not_matter() -> None:
    container = (
        '<?xml version="1.0"?>'
        '<container xmlns="urn:oasis:names:tc:opendocument:xmlns:container" version="1.0"><rootfiles>'
        '<rootfile media-type="application/oebps-package+xml" full-path="OEBPS/content.opf"/>'
        "</rootfiles></container>"
    )
    opf = """<?xml version="1.0"?>
<opf:package xmlns:opf="http://www.idpf.org/2007/opf" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <opf:metadata><dc:title>Prefixed</dc:title></opf:metadata>
  <opf:manifest>
    <opf:item media-type="application/xhtml+xml" href="text/a.xhtml" id="a"/>
  </opf:manifest>
  <opf:spine><opf:itemref idref="a"/></opf:spine>
</opf:package>
"""
    entries = {"OEBPS/content.opf": opf, "OEBPS/text/a.xhtml": _xhtml(_words(12))}

    document = EPUBAdapter().parse(_build_epub(entries, container=container))

    assert document.metadata.title == "Prefixed"
    assert document.metadata.author is None
    assert document.word_count == 12
    assert document.chapters == [Chapter("Chapter 1", 0)]


def test_duplicate_manifest_ids_resolve_to_the_last_declaration() -> None:
    manifest = _item("a", "text/old.xhtml") + _item("a", "text/new.xhtml")
    entries = {
        "OEBPS/content.opf": _opf(manifest, _itemrefs("a")),
        "OEBPS/text/old.xhtml": _xhtml(_words(12, "old")),
        "OEBPS/text/new.xhtml": _xhtml(_words(12, "new")),
    }

    document = EPUBAdapter().parse(_build_epub(entries))

    assert document.words[0] == "new0"


def test_nav_titles_override_ncx_titles() -> None:
    nav = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
  <body>
    <nav epub:type="landmarks"><ol><li><a href="text/b.xhtml">Landmark Beta</a></li></ol></nav>
    <nav epub:type="toc"><ol><li><a href="text/a.xhtml">Nav   Alpha</a></li></ol></nav>
  </body>
</html>
"""
    entries = _two_chapter_entries(**{"OEBPS/nav.xhtml": nav})
    entries["OEBPS/content.opf"] = entries["OEBPS/content.opf"].replace(
        "<manifest>",
        "<manifest>" + _item("nav", "nav.xhtml", properties="nav"),
    )

    document = EPUBAdapter().parse(_build_epub(entries))

    assert [chapter.title for chapter in document.chapters] == ["Nav Alpha", "Beta"]


def test_toc_hrefs_resolve_relative_to_the_toc_directory() -> None:
    ncx = NCX.replace("text/a.xhtml#start", "../text/a.xhtml").replace("text/b.xhtml", "../text/b.xhtml")
    entries = _two_chapter_entries(**{"OEBPS/toc/toc.ncx": ncx})
    entries["OEBPS/content.opf"] = entries["OEBPS/content.opf"].replace('href="toc.ncx"', 'href="toc/toc.ncx"')
    del entries["OEBPS/toc.ncx"]

    document = EPUBAdapter().parse(_build_epub(entries))

    assert [chapter.title for chapter in document.chapters] == ["Alpha", "Beta"]


def test_missing_spine_files_and_unknown_idrefs_are_skipped() -> None:
    manifest = _item("a", "text/a.xhtml") + _item("gone", "text/gone.xhtml") + _item("b", "text/b.xhtml")
    entries = {
        "OEBPS/content.opf": _opf(manifest, _itemrefs("a", "gone", "unknown", "b")),
        "OEBPS/text/a.xhtml": _xhtml(_words(15, "alpha")),
        "OEBPS/text/b.xhtml": _xhtml(_words(20, "beta")),
    }

    document = EPUBAdapter().parse(_build_epub(entries))

    assert [chapter.start_index for chapter in document.chapters] == [0, 15]
    assert document.word_count == 35


def test_url_encoded_hrefs_find_their_archive_entries() -> None:
    entries = {
        "OEBPS/content.opf": _opf(_item("a", "text/my%20chapter.xhtml"), _itemrefs("a")),
        "OEBPS/text/my chapter.xhtml": _xhtml(_words(12)),
    }

    document = EPUBAdapter().parse(_build_epub(entries))

    assert document.word_count == 12
    assert document.chapters == [Chapter("My chapter", 0)]


def test_fallback_titles_use_file_names_or_positions() -> None:
    manifest = _item("one", "text/chapter_one.xhtml") + _item("intro", "text/intro.xhtml")
    entries = {
        "OEBPS/content.opf": _opf(manifest, _itemrefs("one", "intro")),
        "OEBPS/text/chapter_one.xhtml": _xhtml(_words(12)),
        "OEBPS/text/intro.xhtml": _xhtml(_words(12)),
    }

    document = EPUBAdapter().parse(_build_epub(entries))

    assert [chapter.title for chapter in document.chapters] == ["Chapter one", "Chapter 2"]


def test_fallback_chapter_title_helper() -> None:
    assert fallback_chapter_title("text/CHAP-07.xhtml", 3) == "CHAP 07"
    assert fallback_chapter_title("part_two.html", 4) == "Chapter 4"


def test_empty_spine_yields_no_words_and_no_chapters() -> None:
    entries = {"OEBPS/content.opf": _opf("", "")}

    document = EPUBAdapter().parse(_build_epub(entries))

    assert document.words == []
    assert document.chapters == []


def test_missing_container_raises_structure_error() -> None:
    with pytest.raises(StructureError, match="container.xml"):
        EPUBAdapter().parse(_build_epub({}, container=None), source="broken.epub")


def test_container_without_rootfile_raises_structure_error() -> None:
    container = '<container xmlns="urn:oasis:names:tc:opendocument:xmlns:container"><rootfiles/></container>'

    with pytest.raises(StructureError, match="OPF path"):
        EPUBAdapter().parse(_build_epub({}, container=container))


def test_missing_opf_raises_structure_error() -> None:
    with pytest.raises(StructureError, match="OEBPS/content.opf"):
        EPUBAdapter().parse(_build_epub({"OEBPS/text/a.xhtml": _xhtml(_words(12))}))


def test_non_zip_payload_raises_structure_error() -> None:
    with pytest.raises(StructureError, match="Unreadable archive"):
        EPUBAdapter().parse(b"definitely not a zip archive", source="fake.epub")


def test_epub_adapter_supports_suffix_or_zip_magic() -> None:
    adapter = EPUBAdapter()

    assert adapter.supports(Path("novel.EPUB"))
    assert adapter.supports(Path("download"), b"PK\x03\x04rest")
    assert not adapter.supports(Path("paper.pdf"), b"%PDF-1.4")


def _build_realistic_epub(path: Path) -> None:
    book = epub.EpubBook()
    book.set_identifier("readfast-epub")
    book.set_title("Realistic Book")
    book.set_language("en")
    book.add_author("Mary Writer")

    chapter_one = epub.EpubHtml(title="Opening", file_name="chapter_1.xhtml", lang="en")
    chapter_one.content = (
        "<html><body><h1>Opening</h1>"
        "<p>The lighthouse keeper climbed the stairs every evening before the storm arrived.</p>"
        "<p>Nobody in the village remembered when the light had first been lit.</p>"
        "</body></html>"
    )
    chapter_two = epub.EpubHtml(title="Landfall", file_name="chapter_2.xhtml", lang="en")
    chapter_two.content = (
        "<html><body><h1>Landfall</h1>"
        "<p>When the ship finally reached the harbour the sailors sang quietly together.</p>"
        "<p>Their voices carried over the water until morning broke across the bay.</p>"
        "</body></html>"
    )

    book.add_item(chapter_one)
    book.add_item(chapter_two)
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.toc = (chapter_one, chapter_two)
    book.spine = ["nav", chapter_one, chapter_two]
    epub.write_epub(str(path), book)


def test_epub_written_by_ebooklib_is_read_in_spine_order(tmp_path: Path) -> None:
    epub_path = tmp_path / "realistic.epub"
    _build_realistic_epub(epub_path)

    document = EPUBAdapter().parse(epub_path.read_bytes(), source=epub_path.name)

    assert document.metadata.title == "Realistic Book"
    assert document.metadata.author == "Mary Writer"
    assert [chapter.title for chapter in document.chapters] == ["Opening", "Landfall"]
    assert document.chapters[0].start_index == 0
    assert document.chapters[1].start_index > 0
    assert "lighthouse" in document.words
    assert document.words.index("lighthouse") < document.chapters[1].start_index
    assert document.words.index("harbour") >= document.chapters[1].start_index
