"""Scoped extraction of zip bundles with path traversal rejection.

WHY: Bundle formats (DBL zips) carry many members and must be unpacked to
be parsed. Member names come from untrusted files: "../../etc/passwd" or
"/etc/passwd" would otherwise write outside the working directory. The
unpacked tree is also private to one operation and must never leak.

HOW: temporary_extraction() is a context manager around
tempfile.TemporaryDirectory, so the directory is removed on every exit
path, including exceptions. extract_zip_safely() checks every member
name with safe_member_path() before writing anything, so a single bad
member aborts extraction with nothing written.

RULES:
- Absolute member names and names that escape the root are rejected
- Validation happens for all members before the first write
- Callers never see the temporary path outside the with-block
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from bible_converter.core.errors import PathTraversalError

logger = logging.getLogger(__name__)


def safe_member_path(root: str | Path, member: str) -> Path:
    """Resolve an archive member name inside root, or raise PathTraversalError."""
    name = member.replace("\\", "/")
    if name.startswith("/") or posixpath.isabs(name) or (len(name) > 1 and name[1] == ":"):
        raise PathTraversalError(member)
    cleaned = posixpath.normpath(name)
    if cleaned == ".." or cleaned.startswith("../"):
        raise PathTraversalError(member)

    root_path = Path(root).resolve()
    target = (root_path / cleaned).resolve()
    if target != root_path and root_path not in target.parents:
        raise PathTraversalError(member)
    return target


def extract_zip_safely(zip_path: str | Path, dest: str | Path) -> list[Path]:
    """Extract every member of a zip into dest. Returns the written files."""
    dest = Path(dest)
    written: list[Path] = []
    with zipfile.ZipFile(zip_path) as zf:
        members = zf.infolist()
        targets = [(info, safe_member_path(dest, info.filename)) for info in members]
        for info, target in targets:
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)
            written.append(target)
    logger.debug("Extracted %d files from %s", len(written), os.fspath(zip_path))
    return written


@contextmanager
def temporary_extraction(zip_path: str | Path) -> Iterator[Path]:
    """Extract a zip into a private temp directory for the duration of a block."""
    with tempfile.TemporaryDirectory(prefix="bible-converter-") as tmp:
        root = Path(tmp)
        extract_zip_safely(zip_path, root)
        yield root
