"""SWORD module directory adapter (metadata only).

WHY: SWORD (CrossWire) modules are the largest free module library, but
their compressed zText/zCom data files need the full SWORD engine to
decode. Recognising a module tree and carrying its configuration through
the IR still lets a library be catalogued and rebuilt as a skeleton.

HOW: The input is a directory holding mods.d/*.conf plus a modules/ tree.
Each .conf file is an INI-like section ([ModuleName] then Key=Value lines,
with trailing backslashes continuing a value). Extraction writes a stub
corpus.json describing the first module: metadata fields, the raw .conf
text in attributes and one placeholder Document. Emission recreates the
mods.d/ and modules/ skeleton with the original (or a generated) .conf.

RULES:
- Input is a directory; detect rejects plain files
- Module text is never decoded, so extraction and emission are L2
- Ingest stores a JSON manifest of the parsed modules, not the data files
- Invalid .conf files (no [section]) are skipped with a warning
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from bible_converter.core.blobstore import BlobStore
from bible_converter.core.errors import FormatError
from bible_converter.core.ir import STUB_IR_FILENAME, Corpus, Document, ModuleType, check_corpus_id
from bible_converter.core.loss import LossClass, content_hash
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    EnumerateEntry,
    EnumerateResult,
    ExtractIRResult,
    FileFormatHandler,
    IngestResult,
    safe_detect,
)
from bible_converter.plugins.manifest import Capabilities, IRSupport, Manifest

logger = logging.getLogger(__name__)

CONF_ATTRIBUTE = "_sword_conf"

_MODULE_TYPES = {
    "ztext": ModuleType.BIBLE,
    "ztext4": ModuleType.BIBLE,
    "rawtext": ModuleType.BIBLE,
    "rawtext4": ModuleType.BIBLE,
    "zcom": ModuleType.COMMENTARY,
    "zcom4": ModuleType.COMMENTARY,
    "rawcom": ModuleType.COMMENTARY,
    "rawcom4": ModuleType.COMMENTARY,
    "hrefcom": ModuleType.COMMENTARY,
    "rawfiles": ModuleType.COMMENTARY,
    "zld": ModuleType.DICTIONARY,
    "rawld": ModuleType.DICTIONARY,
    "rawld4": ModuleType.DICTIONARY,
}
_DRIVER_BY_TYPE = {
    ModuleType.BIBLE: ("zText", "texts/ztext"),
    ModuleType.COMMENTARY: ("zCom", "comments/zcom"),
    ModuleType.DICTIONARY: ("zLD", "lexdict/zld"),
    ModuleType.GENERAL: ("RawGenBook", "genbook/rawgenbook"),
}


@dataclass
class SwordModule:
    name: str
    conf_path: str
    description: str = ""
    version: str = ""
    data_path: str = ""
    mod_drv: str = ""
    lang: str = ""
    encoding: str = ""
    entries: dict[str, str] = field(default_factory=dict)

    @property
    def module_type(self) -> ModuleType:
        return _MODULE_TYPES.get(self.mod_drv.lower(), ModuleType.GENERAL)


def parse_conf(path: str | Path) -> SwordModule:
    """Parse one SWORD .conf file. Raises FormatError if it names no module."""
    name = ""
    entries: dict[str, str] = {}
    key = ""
    continuing = False
    for raw_line in Path(path).read_text(encoding="utf-8", errors="replace").splitlines():
        line = raw_line.strip()
        if continuing:
            continuing = line.endswith("\\")
            entries[key] += "\n" + line.rstrip("\\").strip()
            continue
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            name = line[1:-1].strip()
            continue
        if "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        continuing = value.endswith("\\")
        # repeated keys (e.g. GlobalOptionFilter) accumulate
        value = value.rstrip("\\").strip()
        entries[key] = f"{entries[key]}\n{value}" if key in entries else value

    if not name:
        raise FormatError(f"{Path(path).name}: no [module] section found")
    return SwordModule(
        name=name,
        conf_path=str(path),
        description=entries.get("Description", ""),
        version=entries.get("Version", ""),
        data_path=entries.get("DataPath", ""),
        mod_drv=entries.get("ModDrv", ""),
        lang=entries.get("Lang", ""),
        encoding=entries.get("Encoding", ""),
        entries=entries,
    )


def find_modules(root: str | Path) -> list[SwordModule]:
    modules = []
    for conf_path in sorted((Path(root) / "mods.d").glob("*.conf")):
        try:
            modules.append(parse_conf(conf_path))
        except FormatError as exc:
            logger.warning("Skipping SWORD conf %s: %s", conf_path, exc)
    return modules


class SwordHandler(FileFormatHandler):
    """Directory-based handler; overrides the single-file ingest and enumerate."""

    MANIFEST = Manifest(
        plugin_id="format.sword",
        version="1.0.0",
        capabilities=Capabilities(inputs=["directory"], outputs=["artifact.kind:ir", "artifact.kind:sword"]),
        ir_support=IRSupport(can_extract=True, can_emit=True, loss_class="L2", formats=["SWORD"]),
    )
    FORMAT_NAME = "SWORD"

    @safe_detect
    def detect(self, path: str | Path) -> DetectResult:
        path = Path(path)
        if not path.is_dir():
            return self._detect_not("path is not a directory")
        mods_d = path / "mods.d"
        if not mods_d.is_dir():
            return self._detect_not("no mods.d directory found")
        conf_files = list(mods_d.glob("*.conf"))
        if not conf_files:
            return self._detect_not("no .conf files in mods.d/")
        if not (path / "modules").is_dir():
            return self._detect_not("no modules directory found")
        return self._detect_yes(f"SWORD module detected: {len(conf_files)} .conf file(s)")

    def _require_modules(self, path: Path) -> list[SwordModule]:
        modules = find_modules(path)
        if not modules:
            raise FormatError(f"no SWORD modules found in {path}")
        return modules

    def ingest(self, path: str | Path, output_dir: str | Path) -> IngestResult:
        path = Path(path)
        modules = self._require_modules(path)
        manifest = {
            "root_path": path.name,
            "modules": [{k: v for k, v in asdict(m).items() if k != "conf_path"} for m in modules],
        }
        blob = BlobStore(output_dir).put_bytes(
            json.dumps(manifest, indent=2, sort_keys=True, ensure_ascii=False).encode("utf-8")
        )
        return IngestResult(
            artifact_id=modules[0].name,
            blob_sha256=blob.hash,
            size_bytes=blob.size_bytes,
            metadata={"format": self.FORMAT_NAME, "module_count": str(len(modules))},
        )

    def enumerate(self, path: str | Path) -> EnumerateResult:
        path = Path(path)
        by_conf = {Path(m.conf_path).name: m for m in find_modules(path)}
        entries = []
        for item in sorted(path.rglob("*")):
            relative = item.relative_to(path).as_posix()
            entry = EnumerateEntry(
                path=relative,
                size_bytes=0 if item.is_dir() else item.stat().st_size,
                is_dir=item.is_dir(),
            )
            module = by_conf.get(item.name) if relative.startswith("mods.d/") else None
            if module is not None:
                entry.metadata = {
                    "module_name": module.name,
                    "description": module.description,
                    "module_version": module.version,
                }
            entries.append(entry)
        return EnumerateResult(entries)

    def extract_ir(self, path: str | Path, output_dir: str | Path) -> ExtractIRResult:
        path = Path(path)
        modules = self._require_modules(path)
        module = modules[0]
        conf_text = Path(module.conf_path).read_text(encoding="utf-8", errors="replace")

        corpus = self.new_corpus(
            module.name,
            content_hash(Path(module.conf_path).read_bytes()),
            module_type=module.module_type,
            loss_class=LossClass.L2,
            title=module.description,
            language=module.lang,
        )
        corpus.attributes.update(
            {
                CONF_ATTRIBUTE: conf_text,
                "sword_module_name": module.name,
                "sword_mod_drv": module.mod_drv,
                "sword_data_path": module.data_path,
            }
        )
        if module.version:
            corpus.attributes["module_version"] = module.version
        if module.encoding:
            corpus.attributes["sword_encoding"] = module.encoding
        if module.entries.get("Versification"):
            corpus.versification = module.entries["Versification"]
        corpus.documents.append(
            Document(
                id=module.name,
                title=module.description,
                order=1,
                attributes={"note": "module text is not decoded; metadata only"},
            )
        )

        report = self.new_report(to_ir=True, loss_class=LossClass.L2)
        report.warn("SWORD module text is not decoded")
        report.warn("Only module metadata was extracted")
        if len(modules) > 1:
            report.warn(f"{len(modules) - 1} additional module(s) in mods.d/ were not extracted")
        ir_path = self.write_ir(corpus, output_dir, STUB_IR_FILENAME)
        logger.info("Extracted SWORD metadata for %s", module.name)
        return ExtractIRResult(str(ir_path), LossClass.L2, report)

    def emit_native(self, ir_path: str | Path, output_dir: str | Path) -> EmitNativeResult:
        corpus = self.read_ir(ir_path)
        module_dir = Path(output_dir) / check_corpus_id(corpus.id)
        (module_dir / "mods.d").mkdir(parents=True, exist_ok=True)
        (module_dir / "modules").mkdir(parents=True, exist_ok=True)

        conf_text = corpus.attributes.get(CONF_ATTRIBUTE) or _generate_conf(corpus)
        conf_path = module_dir / "mods.d" / f"{corpus.id.lower()}.conf"
        conf_path.write_text(conf_text, encoding="utf-8")

        report = self.new_report(to_ir=False, loss_class=LossClass.L2)
        report.warn("SWORD module data files not generated")
        report.warn("Only the conf file and directory skeleton were created")
        if corpus.block_count():
            report.add_lost(corpus.id, "module_text", f"{corpus.block_count()} content blocks not written")
        return EmitNativeResult(str(module_dir), self.FORMAT_NAME, LossClass.L2, report)


def _generate_conf(corpus: Corpus) -> str:
    driver, data_dir = _DRIVER_BY_TYPE[corpus.module_type]
    attributes = corpus.attributes
    data_path = attributes.get("sword_data_path") or f"./modules/{data_dir}/{corpus.id.lower()}/"
    lines = [
        f"[{corpus.id}]",
        f"DataPath={data_path}",
        f"ModDrv={attributes.get('sword_mod_drv') or driver}",
    ]
    if corpus.title:
        lines.append(f"Description={corpus.title}")
    if corpus.language:
        lines.append(f"Lang={corpus.language}")
    if attributes.get("module_version"):
        lines.append(f"Version={attributes['module_version']}")
    if attributes.get("sword_encoding"):
        lines.append(f"Encoding={attributes['sword_encoding']}")
    if corpus.versification:
        lines.append(f"Versification={corpus.versification}")
    return "\n".join(lines) + "\n"
