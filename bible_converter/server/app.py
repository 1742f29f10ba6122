"""FastAPI application exposing detection and conversion over HTTP.

WHY: Web front ends and automation tools (curl, n8n, CI jobs) need to
convert modules without installing the package or shelling out to the
CLI. FastAPI gives request validation and OpenAPI documentation for free.

HOW: create_app() builds a FastAPI app around one frozen PluginRegistry
and stores it, with its Orchestrator, on app.state. Endpoints are plain
(sync) functions on a module-level router, so FastAPI runs the blocking
SQLite/zip/subprocess work in its threadpool. Each upload is written to a
per-request temporary directory that is removed before the response is
returned; the native output is read into memory first.

RULES:
- Error bodies always use ErrorResponse ({"detail": ...})
- Upload filenames are validated: no path separators, no leading dot or
  hyphen, not empty
- Uploads larger than MAX_UPLOAD_BYTES are rejected with 413
- Status mapping: no handler -> 415, unknown plugin -> 404, other
  format errors -> 422, plugin transport failure -> 502, file system -> 500
- Directory outputs (SWORD modules) are returned zipped
- Loss headers are size-bounded summaries; the full reports are only sent
  inside a zip when the client asks for them (include_report)
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import io
import json
import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Annotated, Any, Dict, Optional, Tuple

from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import Response

from bible_converter import __version__, config
from bible_converter.core.errors import (
    ConverterError,
    NoHandlerError,
    PluginNotFoundError,
    TransportError,
)
from bible_converter.core.loss import LossClass, LossReport
from bible_converter.orchestrator import Orchestrator
from bible_converter.plugins.registry import PluginRegistry, build_default_registry
from bible_converter.server.models import (
    DetectResponse,
    ErrorResponse,
    HealthResponse,
    PluginListResponse,
)

logger = logging.getLogger(__name__)

_COPY_CHUNK = 1024 * 1024
LOSS_REPORT_NAME = "loss_report.json"

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def _validate_filename(raw: Optional[str]) -> str:
    """Return the upload filename or raise 400 if it is unsafe."""
    name = (raw or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Upload has no filename")
    if "/" in name or "\\" in name or "\x00" in name:
        raise HTTPException(status_code=400, detail="Invalid filename: {!r}".format(name))
    if name.startswith(".") or name.startswith("-"):
        raise HTTPException(
            status_code=400,
            detail="Invalid filename: {!r} (must not start with '.' or '-')".format(name),
        )
    return name


def _save_upload(upload: UploadFile, dest: Path, limit: int) -> int:
    """Copy an upload to dest in chunks, enforcing the size limit."""
    written = 0
    with open(dest, "wb") as out:
        while True:
            chunk = upload.file.read(_COPY_CHUNK)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                raise HTTPException(
                    status_code=413,
                    detail="Upload exceeds the {} byte limit".format(limit),
                )
            out.write(chunk)
    return written


def _http_error(exc: Exception) -> HTTPException:
    """Map a conversion failure to the HTTP status it is reported with."""
    if isinstance(exc, NoHandlerError):
        return HTTPException(status_code=415, detail=str(exc))
    if isinstance(exc, PluginNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TransportError):
        logger.error("Plugin transport failure: %s", exc)
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, ConverterError):
        return HTTPException(status_code=422, detail=str(exc))
    logger.exception("Conversion failed")
    return HTTPException(status_code=500, detail="Internal error: {}".format(exc))


def _public_report(report: Optional[LossReport]) -> Optional[Dict[str, Any]]:
    """Full loss report for the opt-in report file, without original values."""
    if report is None:
        return None
    data = report.to_dict()
    for element in data.get("lost_elements", []):
        element.pop("original_value", None)
    return data


def _summary_header(extract: Optional[LossReport], emit: Optional[LossReport]) -> str:
    summary = {
        "extract": extract.summary() if extract is not None else None,
        "emit": emit.summary() if emit is not None else None,
    }
    return json.dumps(summary, ensure_ascii=True, separators=(",", ":"))


def _bundle_with_report(out_name: str, content: bytes, report: Dict[str, Any]) -> Tuple[str, bytes]:
    """Zip the converted file together with loss_report.json."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(out_name, content)
        zf.writestr(LOSS_REPORT_NAME, json.dumps(report, indent=2, ensure_ascii=False) + "\n")
    return out_name + ".zip", buffer.getvalue()


def _infer_media_type(filename: str) -> str:
    """Infer MIME type from filename suffix."""
    suffix = Path(filename).suffix.lower()
    mapping = {
        ".json": "application/json",
        ".txt": "text/plain; charset=utf-8",
        ".zip": "application/zip",
        ".dbl": "application/zip",
        ".usx": "application/xml",
        ".bblx": "application/vnd.sqlite3",
        ".cmtx": "application/vnd.sqlite3",
        ".dctx": "application/vnd.sqlite3",
        ".sqlite3": "application/vnd.sqlite3",
    }
    return mapping.get(suffix, "application/octet-stream")


def _read_output(output_path: Path, work_dir: Path) -> Tuple[str, bytes]:
    """Return (filename, bytes) for an emitted file or module directory."""
    if output_path.is_dir():
        archive = shutil.make_archive(
            str(work_dir / output_path.name),
            "zip",
            root_dir=str(output_path.parent),
            base_dir=output_path.name,
        )
        return output_path.name + ".zip", Path(archive).read_bytes()
    return output_path.name, output_path.read_bytes()


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness check for load balancers and orchestrators.",
)
def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, ir_schema_version=config.IR_SCHEMA_VERSION)


# ---------------------------------------------------------------------------
# Endpoints: Plugins
# ---------------------------------------------------------------------------


@router.get(
    "/plugins",
    response_model=PluginListResponse,
    tags=["plugins"],
    summary="List registered plugins",
    description=(
        "Returns the manifest of every registered plugin in detection order. "
        "The first plugin whose detect accepts an upload handles it."
    ),
)
def list_plugins(request: Request) -> PluginListResponse:
    return PluginListResponse(plugins=_orchestrator(request).registry.manifests())


# ---------------------------------------------------------------------------
# Endpoints: Conversion
# ---------------------------------------------------------------------------


@router.post(
    "/detect",
    response_model=DetectResponse,
    tags=["conversion"],
    summary="Detect the format of an uploaded file",
    description="Runs detection over the registered plugins and reports the first match.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid filename"},
        413: {"model": ErrorResponse, "description": "Upload too large"},
        415: {"model": ErrorResponse, "description": "No plugin recognised the file"},
    },
)
def detect_upload(
    request: Request,
    file: Annotated[
        UploadFile,
        File(description="Native module file, e.g. kjv.bblx or a DBL bundle .zip"),
    ],
) -> DetectResponse:
    filename = _validate_filename(file.filename)
    limit = request.app.state.max_upload_bytes
    with tempfile.TemporaryDirectory(prefix="bible-converter-") as tmp:
        source = Path(tmp) / filename
        _save_upload(file, source, limit)
        try:
            detection = _orchestrator(request).detect(source)
        except (ConverterError, OSError) as exc:
            raise _http_error(exc) from exc

    return DetectResponse(
        plugin_id=detection.plugin_id,
        detected=True,
        format=detection.result.format or None,
        reason=detection.result.reason or None,
    )


@router.post(
    "/convert",
    tags=["conversion"],
    summary="Convert an uploaded file to another native format",
    description=(
        "Detects the upload's format, extracts the IR and emits it with the "
        "target plugin. The response body is the native file (zipped when "
        "the target writes a directory). X-Loss-Class carries the worse of "
        "the extraction and emission loss classes; X-Loss-Summary carries a "
        "size-bounded JSON summary of both loss reports (lost-element counts "
        "per type and the first warnings). With include_report=true the body "
        "is a zip holding the converted file and loss_report.json with the "
        "full reports."
    ),
    responses={
        200: {"content": {"application/octet-stream": {}}, "description": "Converted native file"},
        400: {"model": ErrorResponse, "description": "Invalid filename"},
        404: {"model": ErrorResponse, "description": "Unknown target plugin"},
        413: {"model": ErrorResponse, "description": "Upload too large"},
        415: {"model": ErrorResponse, "description": "No plugin recognised the file"},
        422: {"model": ErrorResponse, "description": "Input could not be converted"},
        502: {"model": ErrorResponse, "description": "External plugin failed"},
    },
)
def convert_upload(
    request: Request,
    file: Annotated[
        UploadFile,
        File(description="Native module file to convert"),
    ],
    target: Annotated[
        str,
        Form(description="Target plugin id, e.g. 'format.mybible'. See GET /plugins."),
    ],
    include_report: Annotated[
        bool,
        Form(description="Return a zip with the converted file and the full loss reports."),
    ] = False,
) -> Response:
    filename = _validate_filename(file.filename)
    orchestrator = _orchestrator(request)
    try:
        orchestrator.registry.get(target)
    except PluginNotFoundError as exc:
        raise _http_error(exc) from exc

    limit = request.app.state.max_upload_bytes
    with tempfile.TemporaryDirectory(prefix="bible-converter-") as tmp:
        work = Path(tmp)
        source = work / "in" / filename
        source.parent.mkdir()
        _save_upload(file, source, limit)
        try:
            detection = orchestrator.detect(source)
            extracted = detection.handler.extract_ir(source, work / "ir")
            emitted = orchestrator.emit_native(target, extracted.ir_path, work / "out")
            out_name, content = _read_output(Path(emitted.output_path), work)
        except (ConverterError, OSError) as exc:
            raise _http_error(exc) from exc

    logger.info(
        "Converted %s via %s -> %s (%s, %d bytes)",
        filename,
        detection.plugin_id,
        target,
        emitted.loss_class.value,
        len(content),
    )
    if include_report:
        report = {
            "extract": _public_report(extracted.loss_report),
            "emit": _public_report(emitted.loss_report),
        }
        out_name, content = _bundle_with_report(out_name, content, report)
    headers = {
        "Content-Disposition": 'attachment; filename="{}"'.format(out_name),
        "X-Source-Plugin": detection.plugin_id,
        "X-Loss-Class": LossClass.worst(extracted.loss_class, emitted.loss_class).value,
        "X-Loss-Summary": _summary_header(extracted.loss_report, emitted.loss_report),
    }
    return Response(content=content, media_type=_infer_media_type(out_name), headers=headers)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    registry: Optional[PluginRegistry] = None,
    max_upload_bytes: Optional[int] = None,
) -> FastAPI:
    """Build the FastAPI app around a registry (default: build_default_registry())."""
    if registry is None:
        registry = build_default_registry()
    api = FastAPI(
        title="Bible Converter API",
        description=(
            "REST API for detecting and converting Bible, commentary and "
            "dictionary modules (e-Sword, MyBible, DBL, SWORD, JSON, plain "
            "text) through a canonical intermediate representation."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    api.state.registry = registry
    api.state.orchestrator = Orchestrator(registry)
    api.state.max_upload_bytes = max_upload_bytes if max_upload_bytes is not None else config.MAX_UPLOAD_BYTES
    api.include_router(router)
    return api


def run_api() -> None:
    """Entry point for the bible-converter-api console script."""
    import uvicorn

    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(), host=config.SERVER_HOST, port=config.SERVER_PORT)


app = create_app()
