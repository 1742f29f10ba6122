"""Shared test fixtures for the bible_converter test suite.

WHY: Handler, registry, orchestrator, CLI and API tests all need small but
realistic native modules. Building them here from code keeps the suite
free of binary fixtures and makes every sample's content visible.

HOW: Each fixture writes one native module into pytest's tmp_path and
returns its path: e-Sword Bible/commentary/dictionary databases, a
MyBible database, a JSON Bible, a plain-text Bible, a DBL zip bundle and a
SWORD module directory. ``make_esword_bible`` is a factory for tests that
need specific verse rows.

RULES:
- Samples are deliberately out of order and contain markup where the
  format allows it, so ordering and stripping are always exercised
- Every fixture is independent; nothing is shared between tests
- Verse texts are short and asserted on literally in the tests
"""

from __future__ import annotations

import json
import sqlite3
import zipfile
from contextlib import closing
from pathlib import Path
from typing import Callable, Iterable, Tuple

import pytest

from bible_converter.plugins.registry import PluginRegistry, build_default_registry

VerseTuple = Tuple[int, int, int, str]

# Genesis 1:1-2 and John 3:16, inserted out of order; 1:1 carries HTML markup.
ESWORD_VERSES = [
    (43, 3, 16, "For God so loved the world"),
    (1, 1, 2, "And the earth was without form"),
    (1, 1, 1, "In the <i>beginning</i> God <b>created</b> the heaven and the earth."),
]

USX_GENESIS = """<?xml version="1.0" encoding="UTF-8"?>
<usx version="3.0">
  <book code="GEN" style="id">Genesis</book>
  <para style="mt1">Genesis</para>
  <chapter number="1" style="c" sid="GEN 1"/>
  <para style="s1">The Creation</para>
  <para style="p"><verse number="1" style="v" sid="GEN 1:1"/>In the beginning God created the heaven and the earth.<note caller="+" style="f">Or: at first</note><verse eid="GEN 1:1"/>
  <verse number="2" style="v" sid="GEN 1:2"/>And the earth was <char style="wj">without form</char>, and void.<verse eid="GEN 1:2"/></para>
  <chapter eid="GEN 1"/>
</usx>
"""

DBL_METADATA = """<?xml version="1.0" encoding="UTF-8"?>
<DBLMetadata id="2880c78491b2f8ce" revision="4" type="text" typeVersion="3.0">
  <identification>
    <name>Test English Bible</name>
    <nameLocal>Test English Bible</nameLocal>
    <description>A test bundle</description>
    <scope>Portion</scope>
  </identification>
  <language>
    <iso>eng</iso>
    <name>English</name>
    <script>Latin</script>
  </language>
  <copyright>
    <statement>Public domain</statement>
  </copyright>
</DBLMetadata>
"""

SWORD_CONF = """[KJV]
DataPath=./modules/texts/ztext/kjv/
ModDrv=zText
Encoding=UTF-8
Lang=en
Version=2.9
Description=King James Version (1769)
Versification=KJV
About=The King James Version \\
of the Holy Bible.
GlobalOptionFilter=OSISStrongs
GlobalOptionFilter=OSISFootnotes
"""


def _write_sqlite(path: Path, schema: Iterable[str], inserts: Iterable[Tuple[str, Iterable[tuple]]]) -> Path:
    with closing(sqlite3.connect(path)) as conn:
        with conn:
            for statement in schema:
                conn.execute(statement)
            for sql, rows in inserts:
                conn.executemany(sql, list(rows))
    return path


# ---------------------------------------------------------------------------
# e-Sword
# ---------------------------------------------------------------------------


@pytest.fixture
def make_esword_bible(tmp_path) -> Callable[..., Path]:
    """Factory: write an e-Sword .bblx with the given (book, chapter, verse, text) rows."""

    def make(verses: Iterable[VerseTuple] = ESWORD_VERSES, name: str = "kjv.bblx") -> Path:
        return _write_sqlite(
            tmp_path / name,
            [
                "CREATE TABLE Bible (Book INTEGER, Chapter INTEGER, Verse INTEGER, Scripture TEXT)",
                "CREATE TABLE Details (Title TEXT, Abbreviation TEXT, Information TEXT, "
                "Version TEXT, Font TEXT, RightToLeft INTEGER)",
            ],
            [
                ("INSERT INTO Bible VALUES (?, ?, ?, ?)", verses),
                (
                    "INSERT INTO Details VALUES (?, ?, ?, ?, ?, ?)",
                    [("King James Version", "KJV", "<p>Authorized Version</p>", "1.2", "Times", 0)],
                ),
            ],
        )

    return make


@pytest.fixture
def esword_bible(make_esword_bible) -> Path:
    return make_esword_bible()


@pytest.fixture
def esword_commentary(tmp_path) -> Path:
    return _write_sqlite(
        tmp_path / "mhc.cmtx",
        [
            "CREATE TABLE Commentary (Book INTEGER, ChapterBegin INTEGER, ChapterEnd INTEGER, "
            "VerseBegin INTEGER, VerseEnd INTEGER, Comments TEXT)",
        ],
        [
            (
                "INSERT INTO Commentary VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (1, 1, 1, 1, 3, "{\\rtf1 The first verses of \\b Genesis\\b0 .}"),
                    (40, 5, 5, 3, 3, "Blessed are the poor in spirit."),
                ],
            )
        ],
    )


@pytest.fixture
def esword_dictionary(tmp_path) -> Path:
    return _write_sqlite(
        tmp_path / "easton.dctx",
        ["CREATE TABLE Dictionary (Topic TEXT, Definition TEXT)"],
        [
            (
                "INSERT INTO Dictionary VALUES (?, ?)",
                [("Aaron", "The <b>eldest</b> son of Amram."), ("Abba", "Father.")],
            )
        ],
    )


# ---------------------------------------------------------------------------
# MyBible
# ---------------------------------------------------------------------------


@pytest.fixture
def mybible_db(tmp_path) -> Path:
    return _write_sqlite(
        tmp_path / "web.SQLite3",
        [
            "CREATE TABLE verses (book_number INTEGER, chapter INTEGER, verse INTEGER, text TEXT)",
            "CREATE TABLE info (name TEXT, value TEXT)",
        ],
        [
            (
                "INSERT INTO verses VALUES (?, ?, ?, ?)",
                [
                    (40, 1, 1, "The book of the genealogy of Jesus Christ"),
                    (1, 1, 1, "In the beginning<S>7225</S> God created the heavens and the earth."),
                ],
            ),
            (
                "INSERT INTO info VALUES (?, ?)",
                [
                    ("description", "World English Bible"),
                    ("language", "en"),
                    ("right_to_left", "false"),
                ],
            ),
        ],
    )


# ---------------------------------------------------------------------------
# JSON and plain text
# ---------------------------------------------------------------------------


JSON_BIBLE = {
    "meta": {"id": "web", "title": "World English Bible", "language": "en", "version": "2020"},
    "books": [
        {
            "id": "Matt",
            "name": "Matthew",
            "chapters": [{"number": 1, "verses": [{"verse": 1, "text": "The book of the genealogy"}]}],
        },
        {
            "id": "Gen",
            "name": "Genesis",
            "chapters": [
                {
                    "number": 1,
                    "verses": [
                        {"verse": 1, "text": "In the beginning"},
                        {"verse": 2, "text": "The earth was formless"},
                    ],
                }
            ],
        },
    ],
}


@pytest.fixture
def json_bible(tmp_path) -> Path:
    path = tmp_path / "web.json"
    path.write_text(json.dumps(JSON_BIBLE, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def text_bible(tmp_path) -> Path:
    path = tmp_path / "sample.txt"
    path.write_text(
        "Genesis 1:1 In the beginning God created the heaven and the earth.\n"
        "1:2 And the earth was without form, and void.\n"
        "\n"
        "John 3:16 For God so loved the world.\n",
        encoding="utf-8",
    )
    return path


# ---------------------------------------------------------------------------
# DBL and SWORD
# ---------------------------------------------------------------------------


@pytest.fixture
def dbl_bundle(tmp_path) -> Path:
    path = tmp_path / "bundle.zip"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("metadata.xml", DBL_METADATA)
        zf.writestr("release/USX_1/GEN.usx", USX_GENESIS)
    return path


@pytest.fixture
def sword_module(tmp_path) -> Path:
    root = tmp_path / "sword"
    (root / "mods.d").mkdir(parents=True)
    (root / "modules" / "texts" / "ztext" / "kjv").mkdir(parents=True)
    (root / "mods.d" / "kjv.conf").write_text(SWORD_CONF, encoding="utf-8")
    (root / "modules" / "texts" / "ztext" / "kjv" / "ot.bzs").write_bytes(b"\x00" * 12)
    return root


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> PluginRegistry:
    """The default registry with external plugins left out."""
    return build_default_registry(plugin_dir=Path("/nonexistent/bible-converter-plugins"))
