"""Plain-text Bible adapter ("Book C:V text" per line).

WHY: Verse-per-line text is the lowest common denominator: every tool can
export it and people paste it into e-mails and spreadsheets.

HOW: Each non-empty line matching ``<book> <chapter>:<verse> <text>`` (or
``<chapter>:<verse> <text>``, continuing the previous book) becomes one
verse. Book names are resolved through the canonical book table ("Genesis",
"Gen", "GEN" all become Gen); unknown names are kept as written.

RULES:
- Lines that do not match the verse pattern are reported as lost
- Detection looks only at the first 4 KiB
- Emission writes "<OSIS book> <chapter>:<verse> <text>" lines, UTF-8
- Extraction and emission are both L1
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from bible_converter.core.errors import FormatError
from bible_converter.core.ir import ModuleType
from bible_converter.core.loss import LossClass, content_hash
from bible_converter.core.refs import book_num_to_osis, lookup_book
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    ExtractIRResult,
    FileFormatHandler,
    safe_detect,
)
from bible_converter.formats.verses import PendingBook, iter_verse_rows, number_documents
from bible_converter.plugins.manifest import Capabilities, IRSupport, Manifest

logger = logging.getLogger(__name__)

_DETECT_WINDOW = 4096
_VERSE_LINE_RE = re.compile(
    r"^(?:(?P<book>(?:[1-4] ?)?[A-Za-z][A-Za-z .]*?)\s+)?(?P<chapter>\d+):(?P<verse>\d+)\s+(?P<text>.*)$"
)


def _book_id(name: str) -> str:
    info = lookup_book(name)
    if info is not None:
        return info.osis
    return name.replace(" ", "")


class TextHandler(FileFormatHandler):
    MANIFEST = Manifest(
        plugin_id="format.txt",
        version="1.0.0",
        capabilities=Capabilities(inputs=["file"], outputs=["artifact.kind:ir", "artifact.kind:txt"]),
        ir_support=IRSupport(can_extract=True, can_emit=True, loss_class="L1", formats=["TXT"]),
    )
    FORMAT_NAME = "TXT"
    EXTENSIONS = (".txt", ".text")

    @safe_detect
    def detect(self, path: str | Path) -> DetectResult:
        path = Path(path)
        rejected = self._check_file(path)
        if rejected is not None:
            return rejected
        with open(path, "rb") as f:
            head = f.read(_DETECT_WINDOW).decode("utf-8", errors="ignore")
        if any(_VERSE_LINE_RE.match(line.strip()) for line in head.splitlines()):
            return self._detect_yes("Plain text Bible format detected")
        return self._detect_not("no verse patterns found")

    def extract_ir(self, path: str | Path, output_dir: str | Path) -> ExtractIRResult:
        path = Path(path)
        raw = path.read_bytes()
        corpus = self.new_corpus(
            self.artifact_id_from_path(path),
            content_hash(raw),
            module_type=ModuleType.BIBLE,
            loss_class=LossClass.L1,
        )
        report = self.new_report(to_ir=True, loss_class=LossClass.L1)

        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise FormatError(f"{path.name} is not valid UTF-8 text: {exc}") from exc

        books: dict[str, PendingBook] = {}
        current: PendingBook | None = None
        for number, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            match = _VERSE_LINE_RE.match(line)
            if match is None or (match.group("book") is None and current is None):
                report.add_lost(f"line {number}", "line", "not a verse line", line)
                continue
            if match.group("book") is not None:
                book_id = _book_id(match.group("book").strip())
                current = books.get(book_id)
                if current is None:
                    info = lookup_book(book_id)
                    current = PendingBook(book_id, order=info.number if info else 100 + len(books))
                    books[book_id] = current
            current.add(int(match.group("chapter")), int(match.group("verse")), match.group("text").strip())

        corpus.documents.extend(number_documents(books.values(), report))
        report.warn("Plain text format carries no markup or metadata")
        ir_path = self.write_ir(corpus, output_dir)
        logger.info("Extracted %s: %d books, %d verses", path.name, len(corpus.documents), corpus.block_count())
        return ExtractIRResult(str(ir_path), LossClass.L1, report)

    def emit_native(self, ir_path: str | Path, output_dir: str | Path) -> EmitNativeResult:
        corpus = self.read_ir(ir_path)
        output_path = self.output_path_for(corpus, output_dir, ".txt")
        report = self.new_report(to_ir=False, loss_class=LossClass.L1)
        lines = [
            f"{book_num_to_osis(row.book_num)} {row.chapter}:{row.verse} {row.text}"
            for row in iter_verse_rows(corpus, report)
        ]
        output_path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
        report.warn("All markup and metadata are lost in plain text output")
        return EmitNativeResult(str(output_path), self.FORMAT_NAME, LossClass.L1, report)
