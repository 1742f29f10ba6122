"""Format handler contract and result types.

WHY: The orchestrator, the CLI, the HTTP API and the external plugin
protocol all drive adapters through the same five operations. One abstract
base lets them treat an in-process handler and a subprocess-backed one
identically.

HOW: FormatHandler is an ABC with a ``manifest`` property and five
operations: detect, ingest, enumerate, extract_ir, emit_native. Each
returns a small dataclass whose to_dict()/from_dict() use the field names
of the external JSON protocol. FileFormatHandler fills in what every
single-file adapter shares (blob-store ingest, one-entry enumerate, IR
file writing) so concrete adapters only parse and emit.

RULES:
- detect never raises for bad input; it returns detected=False + reason
- ingest is idempotent: the same bytes give the same blob_sha256
- extract_ir records source_hash and one LostElement per lossy block
- emit_native reports its own loss, independent of the extraction's
- Missing or unreadable input in the other operations raises OSError

To add a new native format:
1. Create a module in formats/
2. Subclass FileFormatHandler (directory formats override ingest and enumerate)
3. Set MANIFEST and implement detect / extract_ir / emit_native
4. Append the class to DEFAULT_HANDLERS in formats/__init__.py
"""

from __future__ import annotations

import functools
import logging
import sqlite3
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable
from xml.etree.ElementTree import ParseError

from bible_converter import config
from bible_converter.core.blobstore import BlobStore
from bible_converter.core.errors import FormatError
from bible_converter.core.ir import (
    Anchor,
    ContentBlock,
    Corpus,
    Ref,
    Span,
    SpanType,
    check_corpus_id,
    ir_filename,
    read_corpus,
    write_corpus,
)
from bible_converter.core.loss import LossClass, LossReport
from bible_converter.plugins.manifest import Manifest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass
class DetectResult:
    detected: bool
    format: str = ""
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"detected": self.detected}
        if self.format:
            data["format"] = self.format
        if self.reason:
            data["reason"] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetectResult:
        return cls(
            detected=bool(data.get("detected", False)),
            format=str(data.get("format") or ""),
            reason=str(data.get("reason") or ""),
        )


@dataclass
class IngestResult:
    artifact_id: str
    blob_sha256: str
    size_bytes: int
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "artifact_id": self.artifact_id,
            "blob_sha256": self.blob_sha256,
            "size_bytes": self.size_bytes,
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IngestResult:
        return cls(
            artifact_id=str(data["artifact_id"]),
            blob_sha256=str(data["blob_sha256"]),
            size_bytes=int(data.get("size_bytes", 0)),
            metadata={k: str(v) for k, v in (data.get("metadata") or {}).items()},
        )


@dataclass
class EnumerateEntry:
    path: str
    size_bytes: int
    is_dir: bool = False
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "size_bytes": self.size_bytes,
            "is_dir": self.is_dir,
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnumerateEntry:
        return cls(
            path=str(data["path"]),
            size_bytes=int(data.get("size_bytes", 0)),
            is_dir=bool(data.get("is_dir", False)),
            metadata={k: str(v) for k, v in (data.get("metadata") or {}).items()},
        )


@dataclass
class EnumerateResult:
    entries: list[EnumerateEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"entries": [e.to_dict() for e in self.entries]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnumerateResult:
        return cls(entries=[EnumerateEntry.from_dict(e) for e in data.get("entries") or []])


@dataclass
class ExtractIRResult:
    ir_path: str
    loss_class: LossClass
    loss_report: LossReport | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ir_path": self.ir_path, "loss_class": self.loss_class.value}
        if self.loss_report is not None:
            data["loss_report"] = self.loss_report.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractIRResult:
        report = data.get("loss_report")
        return cls(
            ir_path=str(data["ir_path"]),
            loss_class=LossClass.parse(data.get("loss_class")) or LossClass.L0,
            loss_report=LossReport.from_dict(report) if report else None,
        )


@dataclass
class EmitNativeResult:
    output_path: str
    format: str
    loss_class: LossClass
    loss_report: LossReport | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "output_path": self.output_path,
            "format": self.format,
            "loss_class": self.loss_class.value,
        }
        if self.loss_report is not None:
            data["loss_report"] = self.loss_report.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmitNativeResult:
        report = data.get("loss_report")
        return cls(
            output_path=str(data["output_path"]),
            format=str(data.get("format") or ""),
            loss_class=LossClass.parse(data.get("loss_class")) or LossClass.L0,
            loss_report=LossReport.from_dict(report) if report else None,
        )


# ---------------------------------------------------------------------------
# Handler contract
# ---------------------------------------------------------------------------


class FormatHandler(ABC):
    """Abstract base for every format adapter.

    WHY: Two implementations exist (in-process adapters and the
    ExternalHandler proxy in plugins/ipc.py) and callers must not care
    which one they hold.
    """

    @property
    @abstractmethod
    def manifest(self) -> Manifest:
        """Identity and capabilities of this handler."""

    @property
    def plugin_id(self) -> str:
        return self.manifest.plugin_id

    @abstractmethod
    def detect(self, path: str | Path) -> DetectResult:
        """Decide whether this handler owns the input. Never raises for bad input."""

    @abstractmethod
    def ingest(self, path: str | Path, output_dir: str | Path) -> IngestResult:
        """Store the raw source bytes content-addressably under output_dir."""

    @abstractmethod
    def enumerate(self, path: str | Path) -> EnumerateResult:
        """List the logical members of the source without parsing it fully."""

    @abstractmethod
    def extract_ir(self, path: str | Path, output_dir: str | Path) -> ExtractIRResult:
        """Parse the source and write one IR file into output_dir."""

    @abstractmethod
    def emit_native(self, ir_path: str | Path, output_dir: str | Path) -> EmitNativeResult:
        """Rebuild a native file from an IR file into output_dir."""


def ref_block(
    sequence: int,
    text: str,
    ref: Ref,
    span_type: str = SpanType.VERSE,
    attributes: dict[str, Any] | None = None,
) -> ContentBlock:
    """Build a content block carrying one reference span at position 0.

    IDs follow one convention across adapters: cb-<seq>, a-<seq>-0 and
    s-<osis_id>.
    """
    anchor_id = f"a-{sequence}-0"
    span = Span(id=f"s-{ref.osis_id}", type=span_type, start_anchor_id=anchor_id, ref=ref)
    return ContentBlock.create(
        id=f"cb-{sequence}",
        sequence=sequence,
        text=text,
        attributes=attributes,
        anchors=[Anchor(id=anchor_id, position=0, spans=[span])],
    )


def block_ref(block: ContentBlock, span_type: str | None = SpanType.VERSE) -> Ref | None:
    """First ref on a block, preferring spans of span_type."""
    fallback: Ref | None = None
    for anchor in block.anchors:
        for span in anchor.spans:
            if span.ref is None:
                continue
            if span_type is None or span.type == span_type:
                return span.ref
            if fallback is None:
                fallback = span.ref
    return fallback


_DETECT_FAILURES = (
    OSError,
    ValueError,
    sqlite3.Error,
    zipfile.BadZipFile,
    ParseError,
    FormatError,
)


def safe_detect(method: Callable[..., DetectResult]) -> Callable[..., DetectResult]:
    """Turn I/O and parse failures inside detect() into detected=False.

    Programming errors (TypeError, AttributeError, ...) still propagate.
    """

    @functools.wraps(method)
    def wrapper(self: FormatHandler, path: str | Path) -> DetectResult:
        try:
            return method(self, path)
        except _DETECT_FAILURES as exc:
            logger.debug("%s detect failed on %s: %s", self.plugin_id, path, exc)
            return DetectResult(detected=False, reason=f"cannot read input: {exc}")

    return wrapper


class FileFormatHandler(FormatHandler):
    """Shared behavior for adapters whose source is a single file.

    Subclasses set MANIFEST, FORMAT_NAME and EXTENSIONS and implement
    detect, extract_ir and emit_native. Ingest and enumerate work on the
    raw file and need no format knowledge.
    """

    MANIFEST: Manifest
    FORMAT_NAME: str = ""
    EXTENSIONS: tuple[str, ...] = ()

    @property
    def manifest(self) -> Manifest:
        return self.MANIFEST

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def artifact_id_from_path(path: str | Path) -> str:
        return Path(path).stem

    def _detect_not(self, reason: str) -> DetectResult:
        return DetectResult(detected=False, reason=reason)

    def _detect_yes(self, reason: str) -> DetectResult:
        return DetectResult(detected=True, format=self.FORMAT_NAME, reason=reason)

    def _check_file(self, path: Path) -> DetectResult | None:
        """Common detect preconditions. Returns a negative result or None."""
        if not path.exists():
            return self._detect_not(f"path does not exist: {path}")
        if path.is_dir():
            return self._detect_not("path is a directory, not a file")
        if self.EXTENSIONS and path.suffix.lower() not in self.EXTENSIONS:
            return self._detect_not(
                f"extension {path.suffix or '(none)'} is not a known {self.FORMAT_NAME} format"
            )
        if path.stat().st_size == 0:
            return self._detect_not("file is empty")
        return None

    def new_report(self, to_ir: bool, loss_class: LossClass) -> LossReport:
        if to_ir:
            return LossReport(self.FORMAT_NAME, "IR", loss_class)
        return LossReport("IR", self.FORMAT_NAME, loss_class)

    def new_corpus(self, corpus_id: str, source_bytes_hash: str, **fields: Any) -> Corpus:
        return Corpus(
            id=corpus_id,
            version=config.IR_SCHEMA_VERSION,
            source_format=self.FORMAT_NAME,
            source_hash=source_bytes_hash,
            **fields,
        )

    def write_ir(self, corpus: Corpus, output_dir: str | Path, filename: str | None = None) -> Path:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        return write_corpus(corpus, output_dir / (filename or ir_filename(corpus.id)))

    def read_ir(self, ir_path: str | Path) -> Corpus:
        return read_corpus(ir_path)

    def output_path_for(self, corpus: Corpus, output_dir: str | Path, extension: str) -> Path:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir / f"{check_corpus_id(corpus.id)}{extension}"

    # -- shared operations -------------------------------------------------

    def ingest(self, path: str | Path, output_dir: str | Path) -> IngestResult:
        path = Path(path)
        blob = BlobStore(output_dir).put_file(path)
        logger.info("Ingested %s as %s", path.name, blob.hash)
        return IngestResult(
            artifact_id=self.artifact_id_from_path(path),
            blob_sha256=blob.hash,
            size_bytes=blob.size_bytes,
            metadata={"format": self.FORMAT_NAME, "original_name": path.name},
        )

    def enumerate(self, path: str | Path) -> EnumerateResult:
        path = Path(path)
        return EnumerateResult(
            entries=[
                EnumerateEntry(
                    path=path.name,
                    size_bytes=path.stat().st_size,
                    is_dir=False,
                    metadata={"format": self.FORMAT_NAME},
                )
            ]
        )
