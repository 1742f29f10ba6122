"""Small sqlite3 helpers shared by the SQLite-backed adapters."""

from __future__ import annotations

import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator

SQLITE_MAGIC = b"SQLite format 3\x00"


def has_sqlite_magic(path: str | Path) -> bool:
    with open(path, "rb") as f:
        return f.read(len(SQLITE_MAGIC)) == SQLITE_MAGIC


@contextmanager
def open_readonly(path: str | Path) -> Iterator[sqlite3.Connection]:
    """Open an existing database read-only; never creates a file."""
    uri = Path(path).resolve().as_uri() + "?mode=ro"
    with closing(sqlite3.connect(uri, uri=True)) as conn:
        yield conn


@contextmanager
def create_database(path: str | Path) -> Iterator[sqlite3.Connection]:
    """Create a fresh database at path, replacing any existing file, and commit on success."""
    path = Path(path)
    if path.exists():
        path.unlink()
    with closing(sqlite3.connect(path)) as conn:
        with conn:
            yield conn


def table_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


def find_table(conn: sqlite3.Connection, name: str) -> str | None:
    """Case-insensitive table lookup; returns the stored table name."""
    wanted = name.lower()
    for table in table_names(conn):
        if table.lower() == wanted:
            return table
    return None
