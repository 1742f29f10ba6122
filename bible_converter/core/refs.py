"""Canonical book table and OSIS reference identifiers.

WHY: Native formats address books differently. e-Sword and MyBible by
number (1–66), DBL/USX by three-letter code, flat text by whatever name the
author typed. The IR uses OSIS book codes ("Gen", "Ps", "Matt") as the
cross-format join key, and every Ref carries an OSIS ID string that must be
derivable from its structured fields.

HOW: CANONICAL_BOOKS lists the 66 Protestant-canon books in order with
their number, OSIS code, USX code and English name. Lookup dicts are built
once at import. build_osis_id() is the single rule that turns
(book, chapter, verse[, end]) into an OSIS ID; parse_osis_id() is its
inverse.

RULES:
- Book numbers are 1-based canonical order (Gen=1 ... Rev=66)
- Unknown book numbers map to "Book<n>"; unknown codes map to 0
- Ranges are always written in full form: "Gen.1.1-Gen.1.3"
- chapter == 0 means "whole book", verse == 0 means "whole chapter"
"""

from __future__ import annotations

import re
from typing import Dict, NamedTuple, Optional, Tuple


class BookInfo(NamedTuple):
    number: int
    osis: str
    usx: str
    name: str


CANONICAL_BOOKS: Tuple[BookInfo, ...] = (
    BookInfo(1, "Gen", "GEN", "Genesis"),
    BookInfo(2, "Exod", "EXO", "Exodus"),
    BookInfo(3, "Lev", "LEV", "Leviticus"),
    BookInfo(4, "Num", "NUM", "Numbers"),
    BookInfo(5, "Deut", "DEU", "Deuteronomy"),
    BookInfo(6, "Josh", "JOS", "Joshua"),
    BookInfo(7, "Judg", "JDG", "Judges"),
    BookInfo(8, "Ruth", "RUT", "Ruth"),
    BookInfo(9, "1Sam", "1SA", "1 Samuel"),
    BookInfo(10, "2Sam", "2SA", "2 Samuel"),
    BookInfo(11, "1Kgs", "1KI", "1 Kings"),
    BookInfo(12, "2Kgs", "2KI", "2 Kings"),
    BookInfo(13, "1Chr", "1CH", "1 Chronicles"),
    BookInfo(14, "2Chr", "2CH", "2 Chronicles"),
    BookInfo(15, "Ezra", "EZR", "Ezra"),
    BookInfo(16, "Neh", "NEH", "Nehemiah"),
    BookInfo(17, "Esth", "EST", "Esther"),
    BookInfo(18, "Job", "JOB", "Job"),
    BookInfo(19, "Ps", "PSA", "Psalms"),
    BookInfo(20, "Prov", "PRO", "Proverbs"),
    BookInfo(21, "Eccl", "ECC", "Ecclesiastes"),
    BookInfo(22, "Song", "SNG", "Song of Solomon"),
    BookInfo(23, "Isa", "ISA", "Isaiah"),
    BookInfo(24, "Jer", "JER", "Jeremiah"),
    BookInfo(25, "Lam", "LAM", "Lamentations"),
    BookInfo(26, "Ezek", "EZK", "Ezekiel"),
    BookInfo(27, "Dan", "DAN", "Daniel"),
    BookInfo(28, "Hos", "HOS", "Hosea"),
    BookInfo(29, "Joel", "JOL", "Joel"),
    BookInfo(30, "Amos", "AMO", "Amos"),
    BookInfo(31, "Obad", "OBA", "Obadiah"),
    BookInfo(32, "Jonah", "JON", "Jonah"),
    BookInfo(33, "Mic", "MIC", "Micah"),
    BookInfo(34, "Nah", "NAM", "Nahum"),
    BookInfo(35, "Hab", "HAB", "Habakkuk"),
    BookInfo(36, "Zeph", "ZEP", "Zephaniah"),
    BookInfo(37, "Hag", "HAG", "Haggai"),
    BookInfo(38, "Zech", "ZEC", "Zechariah"),
    BookInfo(39, "Mal", "MAL", "Malachi"),
    BookInfo(40, "Matt", "MAT", "Matthew"),
    BookInfo(41, "Mark", "MRK", "Mark"),
    BookInfo(42, "Luke", "LUK", "Luke"),
    BookInfo(43, "John", "JHN", "John"),
    BookInfo(44, "Acts", "ACT", "Acts"),
    BookInfo(45, "Rom", "ROM", "Romans"),
    BookInfo(46, "1Cor", "1CO", "1 Corinthians"),
    BookInfo(47, "2Cor", "2CO", "2 Corinthians"),
    BookInfo(48, "Gal", "GAL", "Galatians"),
    BookInfo(49, "Eph", "EPH", "Ephesians"),
    BookInfo(50, "Phil", "PHP", "Philippians"),
    BookInfo(51, "Col", "COL", "Colossians"),
    BookInfo(52, "1Thess", "1TH", "1 Thessalonians"),
    BookInfo(53, "2Thess", "2TH", "2 Thessalonians"),
    BookInfo(54, "1Tim", "1TI", "1 Timothy"),
    BookInfo(55, "2Tim", "2TI", "2 Timothy"),
    BookInfo(56, "Titus", "TIT", "Titus"),
    BookInfo(57, "Phlm", "PHM", "Philemon"),
    BookInfo(58, "Heb", "HEB", "Hebrews"),
    BookInfo(59, "Jas", "JAS", "James"),
    BookInfo(60, "1Pet", "1PE", "1 Peter"),
    BookInfo(61, "2Pet", "2PE", "2 Peter"),
    BookInfo(62, "1John", "1JN", "1 John"),
    BookInfo(63, "2John", "2JN", "2 John"),
    BookInfo(64, "3John", "3JN", "3 John"),
    BookInfo(65, "Jude", "JUD", "Jude"),
    BookInfo(66, "Rev", "REV", "Revelation"),
)

_BY_NUMBER: Dict[int, BookInfo] = {b.number: b for b in CANONICAL_BOOKS}
_BY_OSIS: Dict[str, BookInfo] = {b.osis: b for b in CANONICAL_BOOKS}
_BY_USX: Dict[str, BookInfo] = {b.usx: b for b in CANONICAL_BOOKS}
# Case-insensitive aliases: OSIS code, USX code and English name with or
# without spaces ("1 John", "1John", "1JN" all resolve to 1John).
_ALIASES: Dict[str, BookInfo] = {}
for _book in CANONICAL_BOOKS:
    for _alias in (_book.osis, _book.usx, _book.name, _book.name.replace(" ", "")):
        _ALIASES.setdefault(_alias.lower(), _book)
_ALIASES["psalm"] = _BY_OSIS["Ps"]


def book_num_to_osis(number: int) -> str:
    """Map a canonical book number to its OSIS code ("Book<n>" if unknown)."""
    info = _BY_NUMBER.get(number)
    if info is None:
        return f"Book{number}"
    return info.osis


def osis_to_book_num(code: str) -> int:
    """Map an OSIS (or USX, or English) book name to its number, 0 if unknown."""
    info = lookup_book(code)
    return info.number if info else 0


_PLACEHOLDER_RE = re.compile(r"^Book(\d+)$")


def resolve_book_num(code: str) -> int:
    """Like osis_to_book_num, but also reads back "Book<n>" placeholders."""
    number = osis_to_book_num(code)
    if number:
        return number
    match = _PLACEHOLDER_RE.match(code or "")
    return int(match.group(1)) if match else 0


def osis_to_usx(code: str) -> str:
    info = lookup_book(code)
    return info.usx if info else code.upper()


def usx_to_osis(code: str) -> str:
    info = _BY_USX.get(code.upper())
    return info.osis if info else code


def book_name(code: str) -> str:
    info = lookup_book(code)
    return info.name if info else code


def lookup_book(name: str) -> Optional[BookInfo]:
    """Resolve any known spelling of a book to its BookInfo, or None."""
    if not name:
        return None
    exact = _BY_OSIS.get(name)
    if exact is not None:
        return exact
    return _ALIASES.get(name.strip().lower())


def build_osis_id(
    book: str,
    chapter: int = 0,
    verse: int = 0,
    verse_end: Optional[int] = None,
    chapter_end: Optional[int] = None,
) -> str:
    """Build the canonical OSIS ID for a reference.

    WHY: Ref.osis_id is a lookup key, not independent truth. Every producer
    must derive it the same way so two handlers emitting the same verse
    produce the same key.

    HOW: "Book", "Book.C" or "Book.C.V"; a range appends "-Book.C2.V2"
    when the end differs from the start.

    RULES:
    - verse_end / chapter_end of None or equal to the start is not a range
    - chapter_end defaults to chapter when only verse_end is given
    """
    start = _single_osis(book, chapter, verse)
    if verse_end is None and chapter_end is None:
        return start
    end_chapter = chapter_end if chapter_end is not None else chapter
    end_verse = verse_end if verse_end is not None else verse
    if end_chapter == chapter and end_verse == verse:
        return start
    return f"{start}-{_single_osis(book, end_chapter, end_verse)}"


def _single_osis(book: str, chapter: int, verse: int) -> str:
    if chapter <= 0:
        return book
    if verse <= 0:
        return f"{book}.{chapter}"
    return f"{book}.{chapter}.{verse}"


class OsisParts(NamedTuple):
    book: str
    chapter: int
    verse: int
    chapter_end: Optional[int]
    verse_end: Optional[int]


_SINGLE_RE = re.compile(r"^(?P<book>[1-4]?[A-Za-z]+)(?:\.(?P<chapter>\d+)(?:\.(?P<verse>\d+))?)?$")


def parse_osis_id(text: str) -> OsisParts:
    """Parse "Gen", "Gen.1", "Gen.1.1", "Gen.1.1-Gen.1.3" or "Gen.1.1-3".

    Raises ValueError for anything else, including ranges across books.
    """
    text = text.strip()
    start_text, _, end_text = text.partition("-")
    start = _SINGLE_RE.match(start_text)
    if start is None:
        raise ValueError(f"malformed OSIS reference: {text!r}")
    book = start.group("book")
    chapter = int(start.group("chapter") or 0)
    verse = int(start.group("verse") or 0)
    if not end_text:
        return OsisParts(book, chapter, verse, None, None)

    if end_text.isdigit():
        return OsisParts(book, chapter, verse, None, int(end_text))

    end = _SINGLE_RE.match(end_text)
    if end is None or end.group("book") != book:
        raise ValueError(f"malformed OSIS range: {text!r}")
    end_chapter = int(end.group("chapter") or 0)
    end_verse = int(end.group("verse") or 0)
    return OsisParts(
        book,
        chapter,
        verse,
        end_chapter if end_chapter != chapter else None,
        end_verse,
    )
