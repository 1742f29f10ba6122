"""Tests for the content-addressable blob store and safe zip extraction.

WHY: Ingest must be repeatable and must never clobber stored bytes, and
unpacking an untrusted bundle must never write outside its scratch
directory. Both are security- and correctness-relevant.

HOW: Blobs are written to tmp_path stores; traversal is tested with zips
whose member names are crafted by hand.

RULES:
- A rejected archive leaves nothing behind, inside or outside the root
"""

import zipfile

import pytest

from bible_converter.core.archive import extract_zip_safely, safe_member_path, temporary_extraction
from bible_converter.core.blobstore import BlobStore
from bible_converter.core.errors import PathTraversalError
from bible_converter.core.loss import content_hash


class TestBlobStore:
    def test_path_is_sharded_by_hash_prefix(self, tmp_path):
        blob = BlobStore(tmp_path).put_bytes(b"In the beginning")
        digest = content_hash(b"In the beginning")
        assert blob.hash == digest
        assert blob.path == tmp_path / digest[:2] / digest
        assert blob.path.read_bytes() == b"In the beginning"
        assert blob.size_bytes == 16

    def test_same_bytes_stored_once(self, tmp_path):
        store = BlobStore(tmp_path)
        first = store.put_bytes(b"same")
        mtime = first.path.stat().st_mtime_ns
        second = store.put_bytes(b"same")
        assert first == second
        assert second.path.stat().st_mtime_ns == mtime
        assert len(list(tmp_path.rglob("*"))) == 2  # shard dir + blob

    def test_no_temp_files_left(self, tmp_path):
        BlobStore(tmp_path).put_bytes(b"x")
        assert not [p for p in tmp_path.rglob("*") if p.name.endswith(".tmp")]

    def test_put_file_and_read(self, tmp_path):
        source = tmp_path / "src.bin"
        source.write_bytes(b"\x00\x01\x02")
        store = BlobStore(tmp_path / "store")
        blob = store.put_file(source)
        assert store.exists(blob.hash)
        assert store.read(blob.hash) == b"\x00\x01\x02"

    def test_rejects_non_digest(self, tmp_path):
        with pytest.raises(ValueError):
            BlobStore(tmp_path).path_for("../../etc/passwd")


class TestSafeMemberPath:
    @pytest.mark.parametrize(
        "member",
        ["../../etc/passwd", "/etc/passwd", "a/../../evil.txt", "..\\evil.txt", "C:/evil.txt", ".."],
    )
    def test_escaping_names_rejected(self, tmp_path, member):
        with pytest.raises(PathTraversalError):
            safe_member_path(tmp_path, member)

    def test_nested_name_allowed(self, tmp_path):
        target = safe_member_path(tmp_path, "release/USX_1/GEN.usx")
        assert target == (tmp_path / "release" / "USX_1" / "GEN.usx").resolve()

    def test_inner_dotdot_that_stays_inside_is_allowed(self, tmp_path):
        target = safe_member_path(tmp_path, "a/b/../c.txt")
        assert target == (tmp_path / "a" / "c.txt").resolve()


class TestExtraction:
    def test_traversal_writes_nothing(self, tmp_path):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("metadata.xml", "<DBLMetadata/>")
            zf.writestr("../../etc/passwd", "root:x:0:0")
        dest = tmp_path / "out" / "nested"
        dest.mkdir(parents=True)

        with pytest.raises(PathTraversalError):
            extract_zip_safely(archive, dest)
        assert list(dest.iterdir()) == []
        assert not (tmp_path / "etc").exists()

    def test_extracts_members(self, tmp_path, dbl_bundle):
        dest = tmp_path / "unpacked"
        dest.mkdir()
        written = extract_zip_safely(dbl_bundle, dest)
        assert sorted(p.name for p in written) == ["GEN.usx", "metadata.xml"]

    def test_temporary_extraction_is_removed(self, dbl_bundle):
        with temporary_extraction(dbl_bundle) as root:
            assert (root / "metadata.xml").is_file()
        assert not root.exists()

    def test_temporary_extraction_removed_on_error(self, dbl_bundle):
        with pytest.raises(RuntimeError):
            with temporary_extraction(dbl_bundle) as root:
                raise RuntimeError("boom")
        assert not root.exists()
