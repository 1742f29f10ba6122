"""e-Sword module adapter (.bblx Bibles, .cmtx commentaries, .dctx dictionaries).

WHY: e-Sword is one of the most widely distributed module formats. Its
files are SQLite databases with one content table per module type and a
Details table of metadata; text columns hold RTF (older modules) or HTML
fragments (newer ones).

HOW: The extension decides the module type and the content table:
  .bblx  Bible(Book, Chapter, Verse, Scripture)
  .cmtx  Commentary(Book, ChapterBegin, ChapterEnd, VerseBegin, VerseEnd, Comments)
  .dctx  Dictionary(Topic, Definition)
Bibles become one Document per book (ordered by book number); commentaries
and dictionaries become a single flat Document. Emission writes the same
tables back from the IR.

RULES:
- Markup in text columns is stripped; each affected block is reported once
- Document.attributes["book_num"] keeps the numeric book id for emission
- Details.Font and RightToLeft survive as corpus attributes
- Extraction and emission are both L1
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from bible_converter.core.errors import FormatError
from bible_converter.core.ir import ContentBlock, Corpus, Document, ModuleType, Ref, SpanType
from bible_converter.core.loss import LossClass, LossReport, file_hash
from bible_converter.core.refs import book_num_to_osis, resolve_book_num
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    ExtractIRResult,
    FileFormatHandler,
    block_ref,
    ref_block,
    safe_detect,
)
from bible_converter.formats.markup import record_markup_loss, strip_markup
from bible_converter.formats.sqlite_db import (
    create_database,
    find_table,
    has_sqlite_magic,
    open_readonly,
)
from bible_converter.formats.verses import VerseRow, build_bible_documents, iter_verse_rows
from bible_converter.plugins.manifest import Capabilities, IRSupport, Manifest

logger = logging.getLogger(__name__)

_TABLE_BY_EXTENSION = {
    ".bblx": ("Bible", ModuleType.BIBLE),
    ".cmtx": ("Commentary", ModuleType.COMMENTARY),
    ".dctx": ("Dictionary", ModuleType.DICTIONARY),
}
_EXTENSION_BY_TYPE = {
    ModuleType.BIBLE: ".bblx",
    ModuleType.COMMENTARY: ".cmtx",
    ModuleType.DICTIONARY: ".dctx",
}


class ESwordHandler(FileFormatHandler):
    MANIFEST = Manifest(
        plugin_id="format.esword",
        version="1.0.0",
        capabilities=Capabilities(inputs=["file"], outputs=["artifact.kind:ir", "artifact.kind:esword"]),
        ir_support=IRSupport(can_extract=True, can_emit=True, loss_class="L1", formats=["e-Sword"]),
    )
    FORMAT_NAME = "e-Sword"
    EXTENSIONS = tuple(_TABLE_BY_EXTENSION)

    @safe_detect
    def detect(self, path: str | Path) -> DetectResult:
        path = Path(path)
        rejected = self._check_file(path)
        if rejected is not None:
            return rejected
        if not has_sqlite_magic(path):
            return self._detect_not("not a SQLite database")
        table, module_type = _TABLE_BY_EXTENSION[path.suffix.lower()]
        with open_readonly(path) as conn:
            if find_table(conn, table) is None:
                return self._detect_not(f"SQLite database has no {table} table")
        return self._detect_yes(f"e-Sword {module_type.value.lower()} database detected")

    # -- extraction ---------------------------------------------------------

    def extract_ir(self, path: str | Path, output_dir: str | Path) -> ExtractIRResult:
        path = Path(path)
        table, module_type = _TABLE_BY_EXTENSION.get(path.suffix.lower(), ("Bible", ModuleType.BIBLE))
        corpus = self.new_corpus(
            self.artifact_id_from_path(path),
            file_hash(path),
            module_type=module_type,
            loss_class=LossClass.L1,
        )
        report = self.new_report(to_ir=True, loss_class=LossClass.L1)

        try:
            with open_readonly(path) as conn:
                conn.row_factory = sqlite3.Row
                if find_table(conn, table) is None:
                    raise FormatError(f"{path.name} has no {table} table")
                if module_type is ModuleType.BIBLE:
                    _extract_bible(conn, corpus, report)
                elif module_type is ModuleType.COMMENTARY:
                    _extract_commentary(conn, corpus, report)
                else:
                    _extract_dictionary(conn, corpus, report)
                _read_details(conn, corpus)
        except sqlite3.Error as exc:
            raise FormatError(f"{path.name} is not a readable e-Sword database: {exc}") from exc

        if report.lost_elements:
            report.warn("RTF/HTML formatting in text fields is simplified to plain text")
        corpus.sort_documents()
        ir_path = self.write_ir(corpus, output_dir)
        logger.info("Extracted %s: %d documents, %d blocks", path.name, len(corpus.documents), corpus.block_count())
        return ExtractIRResult(str(ir_path), LossClass.L1, report)

    # -- emission -----------------------------------------------------------

    def emit_native(self, ir_path: str | Path, output_dir: str | Path) -> EmitNativeResult:
        corpus = self.read_ir(ir_path)
        extension = _EXTENSION_BY_TYPE.get(corpus.module_type, ".bblx")
        output_path = self.output_path_for(corpus, output_dir, extension)
        report = self.new_report(to_ir=False, loss_class=LossClass.L1)

        with create_database(output_path) as conn:
            if extension == ".cmtx":
                _emit_commentary(conn, corpus, report)
            elif extension == ".dctx":
                _emit_dictionary(conn, corpus)
            else:
                _emit_bible(conn, corpus, report)
            _write_details(conn, corpus)

        report.warn("RTF formatting not recreated from plain text")
        return EmitNativeResult(str(output_path), self.FORMAT_NAME, LossClass.L1, report)


def _extract_bible(conn: sqlite3.Connection, corpus: Corpus, report: LossReport) -> None:
    rows = conn.execute("SELECT Book, Chapter, Verse, Scripture FROM Bible")
    corpus.documents.extend(
        build_bible_documents(
            (VerseRow(int(r["Book"]), int(r["Chapter"]), int(r["Verse"]), r["Scripture"] or "") for r in rows),
            report,
        )
    )


def _extract_commentary(conn: sqlite3.Connection, corpus: Corpus, report: LossReport) -> None:
    document = Document(id="commentary", title="Commentary", order=1)
    rows = conn.execute(
        "SELECT Book, ChapterBegin, ChapterEnd, VerseBegin, VerseEnd, Comments FROM Commentary "
        "ORDER BY Book, ChapterBegin, VerseBegin"
    )
    for sequence, row in enumerate(rows, start=1):
        book_num = int(row["Book"])
        chapter, verse = int(row["ChapterBegin"]), int(row["VerseBegin"])
        chapter_end = int(row["ChapterEnd"] if row["ChapterEnd"] is not None else chapter)
        verse_end = int(row["VerseEnd"] if row["VerseEnd"] is not None else verse)
        ref = Ref.create(
            book_num_to_osis(book_num),
            chapter,
            verse,
            verse_end=verse_end if (chapter_end, verse_end) != (chapter, verse) else None,
            chapter_end=chapter_end if chapter_end != chapter else None,
        )
        raw = row["Comments"] or ""
        clean = strip_markup(raw)
        record_markup_loss(report, ref.osis_id, raw, clean)
        document.content_blocks.append(
            ref_block(sequence, clean.text, ref, SpanType.COMMENT, {"type": "commentary", "book_num": book_num})
        )
    corpus.documents.append(document)


def _extract_dictionary(conn: sqlite3.Connection, corpus: Corpus, report: LossReport) -> None:
    document = Document(id="dictionary", title="Dictionary", order=1)
    rows = conn.execute("SELECT Topic, Definition FROM Dictionary ORDER BY Topic")
    for sequence, row in enumerate(rows, start=1):
        topic = str(row["Topic"] or "")
        raw = row["Definition"] or ""
        clean = strip_markup(raw)
        record_markup_loss(report, topic or f"cb-{sequence}", raw, clean)
        document.content_blocks.append(
            ContentBlock.create(
                id=f"cb-{sequence}",
                sequence=sequence,
                text=clean.text,
                attributes={"topic": topic, "type": "dictionary"},
            )
        )
    corpus.documents.append(document)


def _read_details(conn: sqlite3.Connection, corpus: Corpus) -> None:
    table = find_table(conn, "Details")
    if table is None:
        return
    row = conn.execute(f'SELECT * FROM "{table}" LIMIT 1').fetchone()
    if row is None:
        return
    details = {key.lower(): row[key] for key in row.keys()}
    if details.get("title"):
        corpus.title = str(details["title"])
    if details.get("information"):
        corpus.description = strip_markup(str(details["information"])).text
    for column, attribute in (("abbreviation", "abbreviation"), ("version", "module_version"), ("font", "font")):
        if details.get(column):
            corpus.attributes[attribute] = str(details[column])
    if details.get("righttoleft") is not None:
        corpus.attributes["right_to_left"] = "true" if int(details["righttoleft"] or 0) else "false"


def _emit_bible(conn: sqlite3.Connection, corpus: Corpus, report: LossReport) -> None:
    conn.execute("CREATE TABLE Bible (Book INTEGER, Chapter INTEGER, Verse INTEGER, Scripture TEXT)")
    conn.execute("CREATE INDEX BookChapterVerseIndex ON Bible (Book, Chapter, Verse)")
    conn.executemany(
        "INSERT INTO Bible (Book, Chapter, Verse, Scripture) VALUES (?, ?, ?, ?)",
        iter_verse_rows(corpus, report),
    )


def _emit_commentary(conn: sqlite3.Connection, corpus: Corpus, report: LossReport) -> None:
    conn.execute(
        "CREATE TABLE Commentary (Book INTEGER, ChapterBegin INTEGER, ChapterEnd INTEGER, "
        "VerseBegin INTEGER, VerseEnd INTEGER, Comments TEXT)"
    )
    for _, block in corpus.iter_blocks():
        ref = block_ref(block, SpanType.COMMENT)
        if ref is None:
            report.add_lost(block.id, "content_block", "commentary block has no reference")
            continue
        book_num = block.attributes.get("book_num")
        if not isinstance(book_num, int) or isinstance(book_num, bool):
            book_num = resolve_book_num(ref.book)
        conn.execute(
            "INSERT INTO Commentary (Book, ChapterBegin, ChapterEnd, VerseBegin, VerseEnd, Comments) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                book_num,
                ref.chapter,
                ref.chapter_end if ref.chapter_end is not None else ref.chapter,
                ref.verse,
                ref.verse_end if ref.verse_end is not None else ref.verse,
                block.text,
            ),
        )


def _emit_dictionary(conn: sqlite3.Connection, corpus: Corpus) -> None:
    conn.execute("CREATE TABLE Dictionary (Topic TEXT, Definition TEXT)")
    for _, block in corpus.iter_blocks():
        topic = block.attributes.get("topic")
        conn.execute(
            "INSERT INTO Dictionary (Topic, Definition) VALUES (?, ?)",
            (topic if isinstance(topic, str) and topic else block.id, block.text),
        )


def _write_details(conn: sqlite3.Connection, corpus: Corpus) -> None:
    conn.execute(
        "CREATE TABLE Details (Title TEXT, Abbreviation TEXT, Information TEXT, "
        "Version TEXT, Font TEXT, RightToLeft INTEGER)"
    )
    conn.execute(
        "INSERT INTO Details (Title, Abbreviation, Information, Version, Font, RightToLeft) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            corpus.title or corpus.id,
            corpus.attributes.get("abbreviation", corpus.id),
            corpus.description,
            corpus.attributes.get("module_version", "1.0"),
            corpus.attributes.get("font", ""),
            1 if corpus.attributes.get("right_to_left") == "true" else 0,
        ),
    )
