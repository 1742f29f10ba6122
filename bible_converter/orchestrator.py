"""Conversion orchestrator: pick a handler by detection, then run one operation.

WHY: Callers (CLI, HTTP API, scripts) have a path and want "ingest this"
or "extract the IR from this" without knowing which format it is. The
orchestrator owns that one decision, which handler claims the input, and
otherwise stays out of the way.

HOW: detect() asks each registered handler in registration order and
returns the first positive answer. run() detects, then calls the
requested operation on the winner. emit_native() addresses a handler by
plugin_id because an IR file has no native format to detect. A full
conversion is extract (via run) followed by emit_native on the target;
that composition lives with the caller.

RULES:
- First positive detect wins; later handlers are not asked
- A detect that fails in transport is logged and counts as "not detected"
- Operation results and errors are returned/raised unchanged
- The orchestrator never retries and holds no per-call state
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from bible_converter.core.errors import NoHandlerError, TransportError
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    EnumerateResult,
    ExtractIRResult,
    FormatHandler,
    IngestResult,
)
from bible_converter.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    INGEST = "ingest"
    ENUMERATE = "enumerate"
    EXTRACT_IR = "extract-ir"


@dataclass
class Detection:
    plugin_id: str
    handler: FormatHandler
    result: DetectResult


class Orchestrator:
    def __init__(self, registry: PluginRegistry) -> None:
        self.registry = registry

    def detect(self, path: Union[str, Path]) -> Detection:
        """Return the first handler that claims path, or raise NoHandlerError."""
        reasons: List[Tuple[str, str]] = []
        for handler in self.registry.handlers():
            try:
                result = handler.detect(path)
            except TransportError as exc:
                logger.warning("Detect via %s failed: %s", handler.plugin_id, exc)
                reasons.append((handler.plugin_id, f"plugin unavailable: {exc}"))
                continue
            if result.detected:
                logger.info("%s detected %s as %s", handler.plugin_id, path, result.format or "?")
                return Detection(handler.plugin_id, handler, result)
            reasons.append((handler.plugin_id, result.reason or "not detected"))
        raise NoHandlerError(str(path), reasons)

    def run(
        self,
        operation: Union[Operation, str],
        path: Union[str, Path],
        output_dir: Optional[Union[str, Path]] = None,
    ) -> Union[IngestResult, EnumerateResult, ExtractIRResult]:
        """Detect the format of path and run one operation with its handler."""
        operation = Operation(operation)
        if operation is not Operation.ENUMERATE and output_dir is None:
            raise ValueError(f"{operation.value} requires an output directory")

        detection = self.detect(path)
        handler = detection.handler
        if operation is Operation.INGEST:
            return handler.ingest(path, output_dir)
        if operation is Operation.ENUMERATE:
            return handler.enumerate(path)
        return handler.extract_ir(path, output_dir)

    def emit_native(
        self,
        plugin_id: str,
        ir_path: Union[str, Path],
        output_dir: Union[str, Path],
    ) -> EmitNativeResult:
        """Emit a native file from an IR file with the named handler."""
        return self.registry.get(plugin_id).emit_native(ir_path, output_dir)
