"""Shared (book, chapter, verse, text) row handling for Bible-shaped formats.

WHY: e-Sword, MyBible and plain-text modules all store a Bible as flat
verse rows keyed by a numeric book id. Grouping rows into ordered book
Documents on the way in, and flattening them back on the way out, is the
same job for all of them.

HOW: PendingBook collects one book's verses; number_documents() sorts
the books, strips markup and numbers blocks with one corpus-wide sequence.
build_bible_documents() does the grouping for numerically keyed rows.
iter_verse_rows() walks a Corpus in document order and yields the rows an
emitter writes, reporting blocks it cannot place.

RULES:
- Rows may arrive in any order; output follows (book, chapter, verse)
- Document.attributes["book_num"] wins when the ref's book is the document's
- Blocks without a verse ref are reported as lost, never guessed
"""

from __future__ import annotations

from typing import Iterable, Iterator, NamedTuple

from bible_converter.core.ir import Corpus, Document, Ref
from bible_converter.core.loss import LossReport
from bible_converter.core.refs import book_name, book_num_to_osis, resolve_book_num
from bible_converter.formats.base import block_ref, ref_block
from bible_converter.formats.markup import record_markup_loss, strip_markup


class VerseRow(NamedTuple):
    book_num: int
    chapter: int
    verse: int
    text: str


class PendingBook:
    """A book Document whose verses are collected before numbering."""

    def __init__(self, book_id: str, order: int | None = None, title: str = "") -> None:
        book_num = resolve_book_num(book_id)
        self.document = Document(
            id=book_id,
            title=title or book_name(book_id),
            order=order if order is not None else book_num,
            attributes={"book_num": str(book_num)} if book_num else {},
        )
        self.verses: list[tuple[int, int, str]] = []

    def add(self, chapter: int, verse: int, text: str) -> None:
        self.verses.append((chapter, verse, text))


def number_documents(pending: Iterable[PendingBook], report: LossReport) -> list[Document]:
    """Order books, then build verse blocks with one corpus-wide sequence."""
    ordered = sorted(pending, key=lambda p: p.document.order)
    sequence = 0
    for entry in ordered:
        document = entry.document
        for chapter, verse, raw in entry.verses:
            sequence += 1
            ref = Ref.create(document.id, chapter, verse)
            clean = strip_markup(raw)
            record_markup_loss(report, ref.osis_id, raw, clean)
            document.content_blocks.append(ref_block(sequence, clean.text, ref))
    return [entry.document for entry in ordered]


def build_bible_documents(rows: Iterable[VerseRow], report: LossReport) -> list[Document]:
    """Group numbered verse rows into one Document per book, in canonical order."""
    books: dict[int, PendingBook] = {}
    for row in sorted(rows, key=lambda r: (r.book_num, r.chapter, r.verse)):
        entry = books.get(row.book_num)
        if entry is None:
            entry = PendingBook(book_num_to_osis(row.book_num), order=row.book_num)
            entry.document.attributes["book_num"] = str(row.book_num)
            books[row.book_num] = entry
        entry.add(row.chapter, row.verse, row.text or "")
    return number_documents(books.values(), report)


def document_book_num(document: Document) -> int:
    raw = document.attributes.get("book_num", "")
    if raw.isdigit():
        return int(raw)
    return resolve_book_num(document.id)


def iter_verse_rows(corpus: Corpus, report: LossReport) -> Iterator[VerseRow]:
    for document in corpus.documents:
        doc_book = document_book_num(document)
        for block in document.content_blocks:
            ref = block_ref(block)
            if ref is None or ref.chapter <= 0 or ref.verse <= 0:
                report.add_lost(block.id, "content_block", "block has no verse reference")
                continue
            if doc_book and ref.book == document.id:
                book_num = doc_book
            else:
                book_num = resolve_book_num(ref.book)
            if not book_num:
                report.add_lost(ref.osis_id, "book", f"unknown book {ref.book!r}")
                continue
            yield VerseRow(book_num, ref.chapter, ref.verse, block.text)
