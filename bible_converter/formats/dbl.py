"""Digital Bible Library bundle adapter (.zip / .dbl with metadata.xml + USX).

WHY: DBL is how publishers exchange licensed translations. A bundle is a
zip holding metadata.xml (identification, language, copyright) and one USX
file per book.

HOW: Extraction unpacks the bundle into a private temporary directory
(core.archive, which rejects member names that escape it), reads
metadata.xml into Corpus fields and walks each USX file in document order.
A <verse number="N"/> milestone opens a verse; following text (including
<char> runs) belongs to it until the next verse, a closing eid milestone,
or a new chapter. Emission writes a fresh bundle with generated
metadata.xml and release/<BOOK>.usx files, one paragraph per verse.

RULES:
- Footnotes (<note>) and section headings are dropped and reported as lost
- Book codes come from <book code="...">, else from the file name
- Paragraph structure is not reconstructed on emission
- Extraction and emission are both L1
"""

from __future__ import annotations

import logging
import re
import zipfile
from pathlib import Path
from typing import Optional
from xml.etree import ElementTree as ET

from bible_converter.core.archive import temporary_extraction
from bible_converter.core.errors import FormatError
from bible_converter.core.ir import Corpus, ModuleType
from bible_converter.core.loss import LossClass, LossReport, file_hash
from bible_converter.core.refs import book_num_to_osis, osis_to_usx, resolve_book_num, usx_to_osis
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    EnumerateEntry,
    EnumerateResult,
    ExtractIRResult,
    FileFormatHandler,
    safe_detect,
)
from bible_converter.formats.verses import PendingBook, VerseRow, iter_verse_rows, number_documents
from bible_converter.plugins.manifest import Capabilities, IRSupport, Manifest

logger = logging.getLogger(__name__)

METADATA_NAME = "metadata.xml"

_FILENAME_BOOK_RE = re.compile(r"(?:^\d+)?([A-Z0-9]{3})$")
_VERSE_NUMBER_RE = re.compile(r"^\s*(\d+)")
# paragraph styles that hold titles and headings rather than verse text
_HEADING_STYLE_RE = re.compile(r"^(s\d*|sr|ms\d*|mr|mt\d*|mte\d*|h\d*|toc\d*|toca\d*|r|d|cl|cd|sp|ide|rem)$")
_SKIPPED_ELEMENTS = ("note", "figure", "sidebar")


def _is_metadata_member(name: str) -> bool:
    return name == METADATA_NAME or name.endswith("/" + METADATA_NAME)


class DBLHandler(FileFormatHandler):
    MANIFEST = Manifest(
        plugin_id="format.dbl",
        version="1.0.0",
        capabilities=Capabilities(inputs=["file"], outputs=["artifact.kind:ir", "artifact.kind:dbl"]),
        ir_support=IRSupport(can_extract=True, can_emit=True, loss_class="L1", formats=["DBL"]),
    )
    FORMAT_NAME = "DBL"
    EXTENSIONS = (".zip", ".dbl")

    @safe_detect
    def detect(self, path: str | Path) -> DetectResult:
        path = Path(path)
        rejected = self._check_file(path)
        if rejected is not None:
            return rejected
        if not zipfile.is_zipfile(path):
            return self._detect_not("not a zip archive")
        with zipfile.ZipFile(path) as zf:
            if not any(_is_metadata_member(name) for name in zf.namelist()):
                return self._detect_not("no metadata.xml found in bundle")
        return self._detect_yes("Digital Bible Library bundle detected")

    def enumerate(self, path: str | Path) -> EnumerateResult:
        """List the bundle members without extracting them."""
        with zipfile.ZipFile(path) as zf:
            return EnumerateResult(
                entries=[
                    EnumerateEntry(
                        path=info.filename,
                        size_bytes=info.file_size,
                        is_dir=info.is_dir(),
                        metadata={"format": self.FORMAT_NAME},
                    )
                    for info in zf.infolist()
                ]
            )

    def extract_ir(self, path: str | Path, output_dir: str | Path) -> ExtractIRResult:
        path = Path(path)
        corpus = self.new_corpus(
            self.artifact_id_from_path(path),
            file_hash(path),
            module_type=ModuleType.BIBLE,
            loss_class=LossClass.L1,
        )
        report = self.new_report(to_ir=True, loss_class=LossClass.L1)

        try:
            with temporary_extraction(path) as root:
                metadata = sorted(root.rglob(METADATA_NAME))
                if not metadata:
                    raise FormatError(f"{path.name}: no metadata.xml found in bundle")
                _read_metadata(metadata[0], corpus)

                books: dict[str, PendingBook] = {}
                for position, usx_path in enumerate(sorted(root.rglob("*.usx")), start=1):
                    _read_usx(usx_path, position, books, report)
        except (zipfile.BadZipFile, ET.ParseError) as exc:
            raise FormatError(f"{path.name} is not a readable DBL bundle: {exc}") from exc

        corpus.documents.extend(number_documents(books.values(), report))
        if not corpus.documents:
            report.warn("bundle contains no USX verse content")
        ir_path = self.write_ir(corpus, output_dir)
        logger.info("Extracted %s: %d books, %d verses", path.name, len(corpus.documents), corpus.block_count())
        return ExtractIRResult(str(ir_path), LossClass.L1, report)

    def emit_native(self, ir_path: str | Path, output_dir: str | Path) -> EmitNativeResult:
        corpus = self.read_ir(ir_path)
        output_path = self.output_path_for(corpus, output_dir, ".zip")
        report = self.new_report(to_ir=False, loss_class=LossClass.L1)

        by_book: dict[int, list[VerseRow]] = {}
        for row in iter_verse_rows(corpus, report):
            by_book.setdefault(row.book_num, []).append(row)

        with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(METADATA_NAME, _metadata_xml(corpus))
            for book_num, rows in by_book.items():
                code = osis_to_usx(book_num_to_osis(book_num))
                zf.writestr(f"release/{code}.usx", _usx_document(code, rows))

        report.warn("Paragraph structure is not reconstructed; one paragraph per verse")
        return EmitNativeResult(str(output_path), self.FORMAT_NAME, LossClass.L1, report)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _read_metadata(path: Path, corpus: Corpus) -> None:
    root = ET.parse(path).getroot()
    corpus.title = (root.findtext("identification/name") or "").strip()
    corpus.description = (root.findtext("identification/description") or "").strip()
    corpus.language = (root.findtext("language/iso") or "").strip()
    corpus.rights = (root.findtext("copyright/statement") or "").strip()
    if root.get("id"):
        corpus.attributes["dbl_id"] = root.get("id", "")
    for xpath, attribute in (
        ("identification/nameLocal", "name_local"),
        ("identification/scope", "scope"),
        ("language/name", "language_name"),
        ("language/script", "script"),
    ):
        value = (root.findtext(xpath) or "").strip()
        if value:
            corpus.attributes[attribute] = value


class _USXWalker:
    """Collects verse text from one USX tree in document order."""

    def __init__(self, report: LossReport) -> None:
        self.report = report
        self.book_code = ""
        self.chapter = 0
        self.verse: Optional[int] = None
        self.verses: list[tuple[int, int, list[str]]] = []

    def _where(self) -> str:
        return f"{self.book_code}.{self.chapter}.{self.verse}" if self.verse else f"{self.book_code}.{self.chapter}"

    def _append(self, text: Optional[str]) -> None:
        if text and self.verse is not None:
            self.verses[-1][2].append(text)

    def walk(self, element: ET.Element) -> None:
        tag = element.tag
        if tag == "book":
            self.book_code = element.get("code", "").strip().upper()
        elif tag == "chapter":
            match = _VERSE_NUMBER_RE.match(element.get("number", ""))
            if match is not None:
                self.chapter = int(match.group(1))
            self.verse = None
        elif tag == "verse":
            match = _VERSE_NUMBER_RE.match(element.get("number", ""))
            if match is not None:
                self.verse = int(match.group(1))
                self.verses.append((self.chapter, self.verse, []))
            elif element.get("eid"):
                self.verse = None
        elif tag in _SKIPPED_ELEMENTS:
            content = "".join(element.itertext()).strip()
            self.report.add_lost(self._where(), tag, f"<{tag}> content is not carried in the IR", content)
        elif tag == "para" and _HEADING_STYLE_RE.match(element.get("style", "")):
            heading = "".join(element.itertext()).strip()
            if heading:
                self.report.add_lost(self._where(), "heading", f"{element.get('style')} heading dropped", heading)
        else:
            self._append(element.text)
            for child in element:
                self.walk(child)
        self._append(element.tail)


def _read_usx(path: Path, position: int, books: dict[str, PendingBook], report: LossReport) -> None:
    walker = _USXWalker(report)
    walker.walk(ET.parse(path).getroot())

    code = walker.book_code
    if not code:
        match = _FILENAME_BOOK_RE.search(path.stem.upper())
        code = match.group(1) if match else path.stem
        walker.book_code = code
    book_id = usx_to_osis(code)

    entry = books.get(book_id)
    if entry is None:
        entry = PendingBook(book_id, order=resolve_book_num(book_id) or 100 + position)
        books[book_id] = entry
    for chapter, verse, parts in walker.verses:
        text = " ".join("".join(parts).split())
        if text:
            entry.add(chapter, verse, text)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def _xml_text(root: ET.Element) -> str:
    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def _metadata_xml(corpus: Corpus) -> str:
    title = corpus.title or corpus.id
    root = ET.Element(
        "DBLMetadata",
        id=corpus.attributes.get("dbl_id", corpus.id),
        revision="1",
        type="text",
        typeVersion="3.0",
    )
    identification = ET.SubElement(root, "identification")
    ET.SubElement(identification, "name").text = title
    ET.SubElement(identification, "nameLocal").text = corpus.attributes.get("name_local", title)
    ET.SubElement(identification, "description").text = corpus.description
    ET.SubElement(identification, "scope").text = corpus.attributes.get("scope", "Bible")
    language = ET.SubElement(root, "language")
    ET.SubElement(language, "iso").text = corpus.language
    ET.SubElement(language, "name").text = corpus.attributes.get("language_name", corpus.language)
    ET.SubElement(language, "script").text = corpus.attributes.get("script", "Latn")
    copyright_ = ET.SubElement(root, "copyright")
    ET.SubElement(copyright_, "statement").text = corpus.rights
    publication = ET.SubElement(ET.SubElement(root, "publications"), "publication", id="default", default="true")
    ET.SubElement(publication, "name").text = title
    return _xml_text(root)


def _usx_document(code: str, rows: list[VerseRow]) -> str:
    root = ET.Element("usx", version="3.0")
    ET.SubElement(root, "book", code=code, style="id")
    chapter = 0
    for row in rows:
        if row.chapter != chapter:
            chapter = row.chapter
            ET.SubElement(root, "chapter", number=str(chapter), style="c", sid=f"{code} {chapter}")
        para = ET.SubElement(root, "para", style="p")
        sid = f"{code} {row.chapter}:{row.verse}"
        ET.SubElement(para, "verse", number=str(row.verse), style="v", sid=sid).tail = row.text
        ET.SubElement(para, "verse", eid=sid)
    return _xml_text(root)
