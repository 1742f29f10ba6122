"""Content-addressable storage for raw ingested bytes.

WHY: Ingest must be repeatable. Storing source bytes under their own hash
means re-ingesting the same module is a no-op and two different filenames
with identical bytes share one blob.

HOW: BlobStore(root) shards by the first two hex characters of the sha256
digest: root/<hash[:2]>/<hash>. New blobs are written to a private temp
file inside the shard directory and moved into place with os.replace, so a
reader never sees a partially written blob even when two writers race on
the same content.

RULES:
- Hashes are lowercase 64-character hex sha256 digests
- Writing an existing hash is skipped, never rewritten
- Only Ingest writes to the store
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from bible_converter.core.loss import content_hash

logger = logging.getLogger(__name__)

_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class StoredBlob:
    hash: str
    path: Path
    size_bytes: int


class BlobStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, digest: str) -> Path:
        if not _HASH_RE.match(digest):
            raise ValueError(f"not a sha256 hex digest: {digest!r}")
        return self.root / digest[:2] / digest

    def exists(self, digest: str) -> bool:
        return self.path_for(digest).is_file()

    def read(self, digest: str) -> bytes:
        return self.path_for(digest).read_bytes()

    def put_bytes(self, data: bytes) -> StoredBlob:
        """Store bytes under their hash. Returns the blob location."""
        digest = content_hash(data)
        dest = self.path_for(digest)
        if dest.is_file():
            logger.debug("Blob %s already stored", digest)
            return StoredBlob(digest, dest, len(data))

        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{digest[:8]}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, dest)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Stored blob %s (%d bytes)", digest, len(data))
        return StoredBlob(digest, dest, len(data))

    def put_file(self, path: str | Path) -> StoredBlob:
        return self.put_bytes(Path(path).read_bytes())
