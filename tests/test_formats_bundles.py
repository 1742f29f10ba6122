"""Tests for the bundle and directory adapters: DBL zips and SWORD modules.

WHY: Both formats are containers. DBL bundles are untrusted zips that
must be unpacked safely and whose USX milestones are easy to misread;
SWORD modules are directories whose .conf syntax has continuation lines
and repeated keys.

HOW: conftest.py builds a DBL zip with metadata.xml and one USX book, and
a SWORD tree with mods.d/kjv.conf and a modules/ data directory.
"""

import json
import shutil
import zipfile

import pytest

from bible_converter.core.errors import FormatError, PathTraversalError
from bible_converter.core.ir import STUB_IR_FILENAME, ModuleType, read_corpus
from bible_converter.core.loss import LossClass
from bible_converter.formats.dbl import DBLHandler
from bible_converter.formats.esword import ESwordHandler
from bible_converter.formats.sword import CONF_ATTRIBUTE, SwordHandler, find_modules, parse_conf

from conftest import DBL_METADATA, SWORD_CONF


class TestDBLDetect:
    def test_bundle_detected(self, dbl_bundle):
        result = DBLHandler().detect(dbl_bundle)
        assert result.detected
        assert result.format == "DBL"

    def test_zip_without_metadata(self, tmp_path):
        path = tmp_path / "plain.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("readme.txt", "hello")
        result = DBLHandler().detect(path)
        assert not result.detected
        assert result.reason == "no metadata.xml found in bundle"

    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "fake.zip"
        path.write_bytes(b"PK but not really")
        assert DBLHandler().detect(path).reason == "not a zip archive"


class TestDBLExtract:
    def test_metadata(self, dbl_bundle, tmp_path):
        corpus = read_corpus(DBLHandler().extract_ir(dbl_bundle, tmp_path).ir_path)
        assert corpus.title == "Test English Bible"
        assert corpus.description == "A test bundle"
        assert corpus.language == "eng"
        assert corpus.rights == "Public domain"
        assert corpus.attributes["dbl_id"] == "2880c78491b2f8ce"
        assert corpus.attributes["scope"] == "Portion"
        assert corpus.attributes["script"] == "Latin"

    def test_verses_from_milestones(self, dbl_bundle, tmp_path):
        corpus = read_corpus(DBLHandler().extract_ir(dbl_bundle, tmp_path).ir_path)
        assert [d.id for d in corpus.documents] == ["Gen"]
        assert [b.text for b in corpus.documents[0].content_blocks] == [
            "In the beginning God created the heaven and the earth.",
            "And the earth was without form, and void.",
        ]

    def test_notes_and_headings_reported(self, dbl_bundle, tmp_path):
        report = DBLHandler().extract_ir(dbl_bundle, tmp_path).loss_report
        assert [e.original_value for e in report.lost_of_type("note")] == ["Or: at first"]
        assert [e.original_value for e in report.lost_of_type("heading")] == ["Genesis", "The Creation"]

    def test_book_code_from_filename(self, tmp_path):
        path = tmp_path / "nocode.zip"
        usx = '<usx version="3.0"><chapter number="2"/><para style="p"><verse number="1"/>Then</para></usx>'
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("metadata.xml", DBL_METADATA)
            zf.writestr("release/040MAT.usx", usx)
        corpus = read_corpus(DBLHandler().extract_ir(path, tmp_path / "ir").ir_path)
        assert corpus.documents[0].id == "Matt"
        assert corpus.documents[0].content_blocks[0].text == "Then"

    def test_traversal_member_rejected(self, tmp_path):
        path = tmp_path / "evil.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("metadata.xml", DBL_METADATA)
            zf.writestr("../../escaped.usx", "<usx/>")
        with pytest.raises(PathTraversalError):
            DBLHandler().extract_ir(path, tmp_path / "ir")
        assert not (tmp_path.parent / "escaped.usx").exists()
        assert not (tmp_path / "ir").exists()

    def test_malformed_usx(self, tmp_path):
        path = tmp_path / "broken.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("metadata.xml", DBL_METADATA)
            zf.writestr("release/GEN.usx", "<usx><para>")
        with pytest.raises(FormatError):
            DBLHandler().extract_ir(path, tmp_path / "ir")

    def test_enumerate(self, dbl_bundle):
        paths = [e.path for e in DBLHandler().enumerate(dbl_bundle).entries]
        assert paths == ["metadata.xml", "release/USX_1/GEN.usx"]


class TestDBLEmit:
    def test_emit_and_re_extract(self, dbl_bundle, tmp_path):
        handler = DBLHandler()
        ir_path = handler.extract_ir(dbl_bundle, tmp_path / "ir").ir_path
        result = handler.emit_native(ir_path, tmp_path / "out")
        assert result.loss_class is LossClass.L1
        with zipfile.ZipFile(result.output_path) as zf:
            assert sorted(zf.namelist()) == ["metadata.xml", "release/GEN.usx"]

        again = read_corpus(handler.extract_ir(result.output_path, tmp_path / "ir2").ir_path)
        original = read_corpus(ir_path)
        assert [b.text for _, b in again.iter_blocks()] == [b.text for _, b in original.iter_blocks()]
        assert again.title == "Test English Bible"
        assert again.attributes["dbl_id"] == "2880c78491b2f8ce"

    def test_esword_to_dbl(self, esword_bible, tmp_path):
        ir_path = ESwordHandler().extract_ir(esword_bible, tmp_path / "ir").ir_path
        output = DBLHandler().emit_native(ir_path, tmp_path / "out").output_path
        with zipfile.ZipFile(output) as zf:
            assert sorted(zf.namelist()) == ["metadata.xml", "release/GEN.usx", "release/JHN.usx"]
            assert 'code="JHN"' in zf.read("release/JHN.usx").decode("utf-8")


class TestSwordConf:
    def test_parse(self, sword_module):
        module = parse_conf(sword_module / "mods.d" / "kjv.conf")
        assert module.name == "KJV"
        assert module.mod_drv == "zText"
        assert module.module_type is ModuleType.BIBLE
        assert module.entries["About"] == "The King James Version\nof the Holy Bible."
        assert module.entries["GlobalOptionFilter"] == "OSISStrongs\nOSISFootnotes"

    def test_no_section_is_format_error(self, tmp_path):
        path = tmp_path / "bad.conf"
        path.write_text("DataPath=./x\n", encoding="utf-8")
        with pytest.raises(FormatError):
            parse_conf(path)

    def test_bad_conf_skipped(self, sword_module):
        (sword_module / "mods.d" / "broken.conf").write_text("garbage\n", encoding="utf-8")
        assert [m.name for m in find_modules(sword_module)] == ["KJV"]


class TestSwordHandler:
    def test_detect(self, sword_module):
        result = SwordHandler().detect(sword_module)
        assert result.detected
        assert result.reason == "SWORD module detected: 1 .conf file(s)"

    @pytest.mark.parametrize(
        "remove, reason",
        [("mods.d", "no mods.d directory found"), ("modules", "no modules directory found")],
    )
    def test_detect_incomplete_tree(self, sword_module, remove, reason):
        shutil.rmtree(sword_module / remove)
        assert SwordHandler().detect(sword_module).reason == reason

    def test_detect_rejects_files(self, esword_bible):
        assert SwordHandler().detect(esword_bible).reason == "path is not a directory"

    def test_ingest_stores_manifest(self, sword_module, tmp_path):
        handler = SwordHandler()
        first = handler.ingest(sword_module, tmp_path / "blobs")
        second = handler.ingest(sword_module, tmp_path / "blobs")
        assert first.blob_sha256 == second.blob_sha256
        assert first.artifact_id == "KJV"
        assert first.metadata["module_count"] == "1"
        stored = tmp_path / "blobs" / first.blob_sha256[:2] / first.blob_sha256
        manifest = json.loads(stored.read_text(encoding="utf-8"))
        assert manifest["modules"][0]["name"] == "KJV"

    def test_enumerate(self, sword_module):
        entries = {e.path: e for e in SwordHandler().enumerate(sword_module).entries}
        assert entries["mods.d/kjv.conf"].metadata["module_name"] == "KJV"
        assert entries["modules/texts/ztext/kjv/ot.bzs"].size_bytes == 12
        assert entries["modules"].is_dir

    def test_extract_stub(self, sword_module, tmp_path):
        result = SwordHandler().extract_ir(sword_module, tmp_path)
        assert result.loss_class is LossClass.L2
        assert result.ir_path.endswith(STUB_IR_FILENAME)
        corpus = read_corpus(result.ir_path)
        assert corpus.id == "KJV"
        assert corpus.title == "King James Version (1769)"
        assert corpus.language == "en"
        assert corpus.versification == "KJV"
        assert corpus.attributes["sword_encoding"] == "UTF-8"
        assert corpus.attributes[CONF_ATTRIBUTE] == SWORD_CONF
        assert corpus.block_count() == 0
        assert "SWORD module text is not decoded" in result.loss_report.warnings

    def test_emit_keeps_conf(self, sword_module, tmp_path):
        handler = SwordHandler()
        ir_path = handler.extract_ir(sword_module, tmp_path / "ir").ir_path
        result = handler.emit_native(ir_path, tmp_path / "out")
        assert result.loss_class is LossClass.L2
        module_dir = tmp_path / "out" / "KJV"
        assert result.output_path == str(module_dir)
        assert (module_dir / "mods.d" / "kjv.conf").read_text(encoding="utf-8") == SWORD_CONF
        assert (module_dir / "modules").is_dir()

    def test_emit_generates_conf(self, esword_bible, tmp_path):
        ir_path = ESwordHandler().extract_ir(esword_bible, tmp_path / "ir").ir_path
        result = SwordHandler().emit_native(ir_path, tmp_path / "out")
        conf = (tmp_path / "out" / "kjv" / "mods.d" / "kjv.conf").read_text(encoding="utf-8")
        assert conf.splitlines()[:3] == ["[kjv]", "DataPath=./modules/texts/ztext/kjv/", "ModDrv=zText"]
        assert "Description=King James Version" in conf
        assert result.loss_report.lost_of_type("module_text")
