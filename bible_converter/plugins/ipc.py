"""External plugin protocol: one JSON request in, one JSON response out.

WHY: Format plugins can be written in any language and run in their own
process, so a crashing or misbehaving parser cannot take the host down.
The protocol is deliberately tiny: the host starts the plugin, writes one
request to its stdin, and reads one response from its stdout.

HOW:
  request   {"command": "extract-ir", "args": {"path": ..., "output_dir": ...}}
  response  {"status": "ok", "result": {...}}
            {"status": "error", "error": "human readable message"}

Host side: SubprocessTransport runs the entrypoint and validates what comes
back; ExternalHandler wraps a transport in the FormatHandler interface so
the registry and orchestrator cannot tell it from an in-process adapter.

Child side: serve() reads one request, dispatches it to any FormatHandler
and writes one response. ``python -m bible_converter plugin <plugin_id>``
uses it to expose the bundled adapters as external plugins.

RULES:
- A response is trusted only if the process exits 0 and stdout parses
- status "error" is a format-level failure (PluginOperationError), not a
  crash; for detect it means detected=False
- Non-zero exit, timeout, or unparseable output is a TransportError
- No retries; the deadline is the caller's (PLUGIN_TIMEOUT_SECONDS)
- The child writes logs to stderr only; stdout carries the response
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, TextIO, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from bible_converter.core.errors import PluginOperationError, TransportError, UnsupportedOperationError
from bible_converter.formats.base import (
    DetectResult,
    EmitNativeResult,
    EnumerateResult,
    ExtractIRResult,
    FormatHandler,
    IngestResult,
)
from bible_converter.plugins.manifest import Manifest

logger = logging.getLogger(__name__)


class Command(str, Enum):
    DETECT = "detect"
    INGEST = "ingest"
    ENUMERATE = "enumerate"
    EXTRACT_IR = "extract-ir"
    EMIT_NATIVE = "emit-native"


# Arguments each command requires.
REQUIRED_ARGS: Dict[Command, Tuple[str, ...]] = {
    Command.DETECT: ("path",),
    Command.INGEST: ("path", "output_dir"),
    Command.ENUMERATE: ("path",),
    Command.EXTRACT_IR: ("path", "output_dir"),
    Command.EMIT_NATIVE: ("ir_path", "output_dir"),
}


class IPCRequest(BaseModel):
    """One request written to a plugin's stdin."""

    command: str = Field(description="One of detect, ingest, enumerate, extract-ir, emit-native.")
    args: Dict[str, Any] = Field(default_factory=dict, description="Command arguments (path, output_dir, ir_path).")

    model_config = {"json_schema_extra": {
        "examples": [
            {"command": "detect", "args": {"path": "/data/kjv.bblx"}},
        ]
    }}


class IPCResponse(BaseModel):
    """One response read from a plugin's stdout."""

    status: Literal["ok", "error"]
    result: Optional[Any] = Field(default=None, description="Command result when status is 'ok'.")
    error: Optional[str] = Field(default=None, description="Error message when status is 'error'.")

    @classmethod
    def ok(cls, result: Any) -> IPCResponse:
        return cls(status="ok", result=result)

    @classmethod
    def failure(cls, message: str) -> IPCResponse:
        return cls(status="error", error=message)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


# ---------------------------------------------------------------------------
# Host side
# ---------------------------------------------------------------------------


class SubprocessTransport:
    """Runs one plugin process per request.

    ``entrypoint`` is an executable path or a full argv list, e.g.
    ``[sys.executable, "-m", "bible_converter", "plugin", "format.txt"]``.
    """

    def __init__(
        self,
        entrypoint: Union[str, Path, Sequence[str]],
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if isinstance(entrypoint, (str, Path)):
            self.argv: List[str] = [str(entrypoint)]
        else:
            self.argv = [str(part) for part in entrypoint]
        if not self.argv:
            raise ValueError("entrypoint must not be empty")
        self.cwd = str(cwd) if cwd is not None else None
        self.timeout = timeout

    def call(self, request: IPCRequest) -> IPCResponse:
        payload = request.model_dump_json()
        name = Path(self.argv[0]).name
        try:
            completed = subprocess.run(
                self.argv,
                input=payload,
                capture_output=True,
                encoding="utf-8",
                cwd=self.cwd,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr.decode("utf-8", "replace") if isinstance(exc.stderr, bytes) else exc.stderr or ""
            raise TransportError(f"plugin {name} timed out after {self.timeout}s", stderr=stderr) from exc
        except OSError as exc:
            raise TransportError(f"cannot start plugin {name}: {exc}") from exc

        if completed.stderr:
            logger.debug("plugin %s stderr: %s", name, completed.stderr.strip())
        if completed.returncode != 0:
            raise TransportError(
                f"plugin {name} failed on {request.command}",
                exit_code=completed.returncode,
                stderr=completed.stderr,
            )
        output = completed.stdout.strip()
        if not output:
            raise TransportError(f"plugin {name} wrote no response", exit_code=0, stderr=completed.stderr)
        try:
            return IPCResponse.model_validate_json(output)
        except ValidationError as exc:
            raise TransportError(
                f"plugin {name} wrote a malformed response: {output[:200]!r}",
                exit_code=0,
                stderr=completed.stderr,
            ) from exc


class ExternalHandler(FormatHandler):
    """FormatHandler whose operations run in an external plugin process."""

    def __init__(self, manifest: Manifest, transport: SubprocessTransport) -> None:
        self._manifest = manifest
        self.transport = transport

    @property
    def manifest(self) -> Manifest:
        return self._manifest

    def _call(self, command: Command, **args: Union[str, Path]) -> Dict[str, Any]:
        absolute = {key: os.path.abspath(value) for key, value in args.items()}
        request = IPCRequest(command=command.value, args=absolute)
        response = self.transport.call(request)
        if response.status == "error":
            raise PluginOperationError(self.plugin_id, command.value, response.error or "unknown error")
        if not isinstance(response.result, dict):
            raise TransportError(f"plugin {self.plugin_id} returned no result object for {command.value}")
        return response.result

    def _parse(self, command: Command, parser: Callable[[Dict[str, Any]], Any], data: Dict[str, Any]) -> Any:
        try:
            return parser(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise TransportError(f"plugin {self.plugin_id} returned an invalid {command.value} result: {exc}") from exc

    def detect(self, path: Union[str, Path]) -> DetectResult:
        try:
            data = self._call(Command.DETECT, path=path)
        except PluginOperationError as exc:
            logger.warning("Plugin %s failed to detect %s: %s", self.plugin_id, path, exc.message)
            return DetectResult(detected=False, reason=exc.message)
        return self._parse(Command.DETECT, DetectResult.from_dict, data)

    def ingest(self, path: Union[str, Path], output_dir: Union[str, Path]) -> IngestResult:
        data = self._call(Command.INGEST, path=path, output_dir=output_dir)
        return self._parse(Command.INGEST, IngestResult.from_dict, data)

    def enumerate(self, path: Union[str, Path]) -> EnumerateResult:
        data = self._call(Command.ENUMERATE, path=path)
        return self._parse(Command.ENUMERATE, EnumerateResult.from_dict, data)

    def extract_ir(self, path: Union[str, Path], output_dir: Union[str, Path]) -> ExtractIRResult:
        data = self._call(Command.EXTRACT_IR, path=path, output_dir=output_dir)
        return self._parse(Command.EXTRACT_IR, ExtractIRResult.from_dict, data)

    def emit_native(self, ir_path: Union[str, Path], output_dir: Union[str, Path]) -> EmitNativeResult:
        data = self._call(Command.EMIT_NATIVE, ir_path=ir_path, output_dir=output_dir)
        return self._parse(Command.EMIT_NATIVE, EmitNativeResult.from_dict, data)


# ---------------------------------------------------------------------------
# Child side
# ---------------------------------------------------------------------------


def _run_command(handler: FormatHandler, command: Command, args: Dict[str, Any]) -> Any:
    if command is Command.DETECT:
        return handler.detect(args["path"])
    if command is Command.INGEST:
        return handler.ingest(args["path"], args["output_dir"])
    if command is Command.ENUMERATE:
        return handler.enumerate(args["path"])
    if command is Command.EXTRACT_IR:
        return handler.extract_ir(args["path"], args["output_dir"])
    return handler.emit_native(args["ir_path"], args["output_dir"])


def dispatch(handler: FormatHandler, request: IPCRequest) -> IPCResponse:
    """Run one request against a handler and wrap the outcome."""
    try:
        command = Command(request.command)
    except ValueError:
        return IPCResponse.failure(str(UnsupportedOperationError(f"unknown command: {request.command}")))

    missing = [name for name in REQUIRED_ARGS[command] if not isinstance(request.args.get(name), str)]
    if missing:
        return IPCResponse.failure(f"{' and '.join(missing)} argument required")

    try:
        result = _run_command(handler, command, request.args)
    except Exception as exc:
        logger.exception("%s %s failed", handler.plugin_id, command.value)
        return IPCResponse.failure(str(exc) or exc.__class__.__name__)
    return IPCResponse.ok(result.to_dict())


def serve(handler: FormatHandler, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> int:
    """Answer exactly one request. Returns the process exit code.

    The exit code is 0 whenever a response was written, including
    status "error" responses.
    """
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout

    raw = stdin.read()
    try:
        request = IPCRequest.model_validate_json(raw)
    except ValidationError as exc:
        response = IPCResponse.failure(f"failed to decode request: {exc}")
    else:
        response = dispatch(handler, request)

    stdout.write(response.to_json() + "\n")
    stdout.flush()
    return 0
