"""MyBible.zone module adapter (.SQLite3).

WHY: MyBible is the dominant module format on Android. A Bible module is
a SQLite file with a ``verses`` table and an ``info`` table of name/value
metadata pairs.

HOW: Verses are read with the shared verse-row helpers into one Document
per book. Well-known info keys map onto Corpus fields (description →
title, detailed_info → description, language); every other key is kept in
Corpus.attributes and written back on emission.

RULES:
- Book numbers are canonical 1–66
- Inline tags (<S> Strong's, <J> red letter, <f> footnotes) are stripped
- Extraction and emission are both L1
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from bible_converter.core.errors import FormatError
from bible_converter.core.ir import Corpus, ModuleType
from bible_converter.core.loss import LossClass, file_hash
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    EnumerateEntry,
    EnumerateResult,
    ExtractIRResult,
    FileFormatHandler,
    safe_detect,
)
from bible_converter.formats.sqlite_db import (
    create_database,
    find_table,
    has_sqlite_magic,
    open_readonly,
    table_names,
)
from bible_converter.formats.verses import VerseRow, build_bible_documents, iter_verse_rows
from bible_converter.plugins.manifest import Capabilities, IRSupport, Manifest

logger = logging.getLogger(__name__)

# info keys that map onto first-class Corpus fields
_INFO_FIELDS = {"description": "title", "detailed_info": "description", "language": "language"}


class MyBibleHandler(FileFormatHandler):
    MANIFEST = Manifest(
        plugin_id="format.mybible",
        version="1.0.0",
        capabilities=Capabilities(inputs=["file"], outputs=["artifact.kind:ir", "artifact.kind:mybible"]),
        ir_support=IRSupport(can_extract=True, can_emit=True, loss_class="L1", formats=["MyBible"]),
    )
    FORMAT_NAME = "MyBible"
    EXTENSIONS = (".sqlite3",)

    @safe_detect
    def detect(self, path: str | Path) -> DetectResult:
        path = Path(path)
        rejected = self._check_file(path)
        if rejected is not None:
            return rejected
        if not has_sqlite_magic(path):
            return self._detect_not("not a SQLite database")
        with open_readonly(path) as conn:
            if find_table(conn, "verses") is None:
                return self._detect_not("no 'verses' table found")
        return self._detect_yes("MyBible.zone database file detected")

    def enumerate(self, path: str | Path) -> EnumerateResult:
        """List the database tables with their row counts."""
        path = Path(path)
        entries = []
        with open_readonly(path) as conn:
            for table in sorted(table_names(conn)):
                count = conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
                entries.append(
                    EnumerateEntry(
                        path=f"{path.name}/{table}",
                        size_bytes=0,
                        metadata={"format": self.FORMAT_NAME, "table": table, "rows": str(count)},
                    )
                )
        return EnumerateResult(entries)

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
            with open_readonly(path) as conn:
                conn.row_factory = sqlite3.Row
                if find_table(conn, "verses") is None:
                    raise FormatError(f"{path.name} has no verses table")
                rows = conn.execute("SELECT book_number, chapter, verse, text FROM verses")
                corpus.documents.extend(
                    build_bible_documents(
                        (
                            VerseRow(int(r["book_number"]), int(r["chapter"]), int(r["verse"]), r["text"] or "")
                            for r in rows
                        ),
                        report,
                    )
                )
                if find_table(conn, "info") is not None:
                    _read_info(conn, corpus)
        except sqlite3.Error as exc:
            raise FormatError(f"{path.name} is not a readable MyBible database: {exc}") from exc

        if report.lost_elements:
            report.warn("MyBible inline tags are stripped to plain text")
        corpus.sort_documents()
        ir_path = self.write_ir(corpus, output_dir)
        logger.info("Extracted %s: %d books, %d verses", path.name, len(corpus.documents), corpus.block_count())
        return ExtractIRResult(str(ir_path), LossClass.L1, report)

    def emit_native(self, ir_path: str | Path, output_dir: str | Path) -> EmitNativeResult:
        corpus = self.read_ir(ir_path)
        output_path = self.output_path_for(corpus, output_dir, ".SQLite3")
        report = self.new_report(to_ir=False, loss_class=LossClass.L1)
        if corpus.module_type not in (ModuleType.BIBLE, ModuleType.GENERAL):
            report.warn(f"{corpus.module_type.value} corpus written as a Bible module")

        with create_database(output_path) as conn:
            conn.execute(
                "CREATE TABLE verses (book_number INTEGER NOT NULL, chapter INTEGER NOT NULL, "
                "verse INTEGER NOT NULL, text TEXT NOT NULL DEFAULT '')"
            )
            conn.execute("CREATE INDEX book_number_index ON verses (book_number)")
            conn.executemany(
                "INSERT INTO verses (book_number, chapter, verse, text) VALUES (?, ?, ?, ?)",
                iter_verse_rows(corpus, report),
            )
            conn.execute("CREATE TABLE info (name TEXT NOT NULL, value TEXT NOT NULL)")
            conn.executemany("INSERT INTO info (name, value) VALUES (?, ?)", _info_rows(corpus))

        return EmitNativeResult(str(output_path), self.FORMAT_NAME, LossClass.L1, report)


def _read_info(conn: sqlite3.Connection, corpus: Corpus) -> None:
    for row in conn.execute("SELECT name, value FROM info"):
        name, value = str(row["name"]), "" if row["value"] is None else str(row["value"])
        target = _INFO_FIELDS.get(name)
        if target is not None:
            setattr(corpus, target, value)
        else:
            corpus.attributes[name] = value


def _info_rows(corpus: Corpus) -> list[tuple[str, str]]:
    rows = [("description", corpus.title or corpus.id)]
    if corpus.description:
        rows.append(("detailed_info", corpus.description))
    if corpus.language:
        rows.append(("language", corpus.language))
    reserved = set(_INFO_FIELDS)
    rows.extend(
        (k, v) for k, v in sorted(corpus.attributes.items()) if k not in reserved and not k.startswith("_")
    )
    return rows
