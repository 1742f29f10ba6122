"""JSON Bible adapter.

WHY: A plain JSON layout (meta + books → chapters → verses) is the easiest
format for web tooling to consume and the one most often hand-edited.

HOW: Extraction walks books/chapters/verses (or a flat top-level
``verses`` list when ``books`` is absent) into one Document per book. The
original file text is kept in Corpus.attributes together with a
fingerprint of the extracted IR (metadata, documents and blocks); emission
writes the original bytes back unchanged when nothing in the IR has been
edited since, and regenerates the JSON otherwise.

RULES:
- Extraction is L0: the source is reproducible byte for byte
- Emission is L0 when the stored original is reused, L1 when regenerated
- Book order comes from books[].order, then canonical order, then position
- Both nested books and the flat verse list are written on regeneration
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from bible_converter.core.errors import FormatError
from bible_converter.core.ir import Corpus, ModuleType, corpus_to_dict
from bible_converter.core.loss import LossClass, LossReport, content_hash
from bible_converter.core.refs import resolve_book_num
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    ExtractIRResult,
    FileFormatHandler,
    block_ref,
    safe_detect,
)
from bible_converter.formats.verses import PendingBook, number_documents
from bible_converter.plugins.manifest import Capabilities, IRSupport, Manifest

logger = logging.getLogger(__name__)

RAW_ATTRIBUTE = "_json_raw"
FINGERPRINT_ATTRIBUTE = "_json_fingerprint"


def _fingerprint(corpus: Corpus) -> str:
    """Hash of everything in the IR an edit could change."""
    data = corpus_to_dict(corpus)
    data.pop("loss_class", None)
    data["attributes"] = {
        k: v for k, v in data.get("attributes", {}).items() if k not in (RAW_ATTRIBUTE, FINGERPRINT_ATTRIBUTE)
    }
    return content_hash(json.dumps(data, sort_keys=True, ensure_ascii=False))


class JSONBibleHandler(FileFormatHandler):
    MANIFEST = Manifest(
        plugin_id="format.json",
        version="1.0.0",
        capabilities=Capabilities(inputs=["file"], outputs=["artifact.kind:ir", "artifact.kind:json"]),
        ir_support=IRSupport(can_extract=True, can_emit=True, loss_class="L0", formats=["JSON"]),
    )
    FORMAT_NAME = "JSON"
    EXTENSIONS = (".json",)

    @safe_detect
    def detect(self, path: str | Path) -> DetectResult:
        path = Path(path)
        rejected = self._check_file(path)
        if rejected is not None:
            return rejected
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError:
            return self._detect_not("not valid JSON")
        if not isinstance(data, dict) or not ({"meta", "books"} & data.keys() or "verses" in data):
            return self._detect_not("not a JSON Bible (no meta/books keys)")
        if "documents" in data and "module_type" in data:
            return self._detect_not("file is an IR corpus, not a JSON Bible")
        return self._detect_yes("JSON Bible format detected")

    def extract_ir(self, path: str | Path, output_dir: str | Path) -> ExtractIRResult:
        path = Path(path)
        raw_bytes = path.read_bytes()
        try:
            raw = raw_bytes.decode("utf-8")
            data = json.loads(raw)
        except ValueError as exc:
            raise FormatError(f"{path.name} is not valid UTF-8 JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise FormatError(f"{path.name}: top-level value must be an object")

        meta = data.get("meta") or {}
        corpus = self.new_corpus(
            str(meta.get("id") or self.artifact_id_from_path(path)),
            content_hash(raw_bytes),
            module_type=ModuleType.BIBLE,
            loss_class=LossClass.L0,
            title=str(meta.get("title") or ""),
            language=str(meta.get("language") or ""),
            description=str(meta.get("description") or ""),
        )
        if meta.get("version"):
            corpus.attributes["module_version"] = str(meta["version"])
        report = self.new_report(to_ir=True, loss_class=LossClass.L0)

        books = data.get("books")
        try:
            pending = _collect_books(books) if books else _collect_flat_verses(data.get("verses") or [])
        except (AttributeError, TypeError, ValueError) as exc:
            raise FormatError(f"{path.name}: unexpected JSON Bible structure ({exc})") from exc
        corpus.documents.extend(number_documents(pending, report))

        corpus.attributes[RAW_ATTRIBUTE] = raw
        corpus.attributes[FINGERPRINT_ATTRIBUTE] = _fingerprint(corpus)
        if report.lost_elements:
            report.warn("Markup in verse text is stripped in the IR; the original file is kept for re-emission")

        ir_path = self.write_ir(corpus, output_dir)
        logger.info("Extracted %s: %d books", path.name, len(corpus.documents))
        return ExtractIRResult(str(ir_path), LossClass.L0, report)

    def emit_native(self, ir_path: str | Path, output_dir: str | Path) -> EmitNativeResult:
        corpus = self.read_ir(ir_path)
        output_path = self.output_path_for(corpus, output_dir, ".json")
        raw = corpus.attributes.get(RAW_ATTRIBUTE)
        if raw and corpus.attributes.get(FINGERPRINT_ATTRIBUTE) == _fingerprint(corpus):
            output_path.write_text(raw, encoding="utf-8")
            report = self.new_report(to_ir=False, loss_class=LossClass.L0)
            return EmitNativeResult(str(output_path), self.FORMAT_NAME, LossClass.L0, report)

        report = self.new_report(to_ir=False, loss_class=LossClass.L1)
        if raw:
            report.warn("IR changed since extraction; JSON regenerated from the IR")
        document = _build_json(corpus, report)
        output_path.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        return EmitNativeResult(str(output_path), self.FORMAT_NAME, LossClass.L1, report)


def _collect_books(books: list[dict[str, Any]]) -> list[PendingBook]:
    pending = []
    for position, book in enumerate(books, start=1):
        book_id = str(book.get("id") or f"Book{position}")
        order = book.get("order")
        if not isinstance(order, int) or isinstance(order, bool):
            order = resolve_book_num(book_id) or position
        entry = PendingBook(book_id, order=order, title=str(book.get("name") or ""))
        for chapter in book.get("chapters") or []:
            number = int(chapter.get("number") or 0)
            for verse in chapter.get("verses") or []:
                entry.add(number, int(verse.get("verse") or 0), str(verse.get("text") or ""))
        pending.append(entry)
    return pending


def _collect_flat_verses(verses: list[dict[str, Any]]) -> list[PendingBook]:
    by_book: dict[str, PendingBook] = {}
    for verse in verses:
        book_id = str(verse.get("book") or "Unknown")
        entry = by_book.get(book_id)
        if entry is None:
            entry = PendingBook(book_id, order=resolve_book_num(book_id) or len(by_book) + 1)
            by_book[book_id] = entry
        entry.add(int(verse.get("chapter") or 0), int(verse.get("verse") or 0), str(verse.get("text") or ""))
    return list(by_book.values())


def _build_json(corpus: Corpus, report: LossReport) -> dict[str, Any]:
    meta = {
        "id": corpus.id,
        "title": corpus.title or corpus.id,
        "version": corpus.attributes.get("module_version", corpus.version),
    }
    if corpus.language:
        meta["language"] = corpus.language
    if corpus.description:
        meta["description"] = corpus.description

    books = []
    flat = []
    for document in corpus.documents:
        chapters: dict[int, list[dict[str, Any]]] = {}
        for block in document.content_blocks:
            ref = block_ref(block)
            if ref is None:
                report.add_lost(block.id, "content_block", "block has no verse reference")
                continue
            verse = {
                "book": document.id,
                "chapter": ref.chapter,
                "verse": ref.verse,
                "text": block.text,
                "id": ref.osis_id,
            }
            chapters.setdefault(ref.chapter, []).append(verse)
            flat.append(verse)
        books.append(
            {
                "id": document.id,
                "name": document.title or document.id,
                "order": document.order,
                "chapters": [{"number": n, "verses": chapters[n]} for n in sorted(chapters)],
            }
        )
    return {"meta": meta, "books": books, "verses": flat}
