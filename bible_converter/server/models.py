"""Pydantic response models for the HTTP API.

WHY: FastAPI uses these for response serialization and the OpenAPI
schema shown at /docs. Keeping them apart from the handler result
dataclasses means the wire shape of the API can stay stable while the
internals change.

HOW: One model per response body. Plugin listings reuse the manifest
models from plugins.manifest so /plugins and plugin.json share one shape.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Error bodies always use ErrorResponse ({"detail": ...})
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from bible_converter.plugins.manifest import Manifest


class HealthResponse(BaseModel):
    """Liveness check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="Host version string.", json_schema_extra={"example": "0.5.0"})
    ir_schema_version: str = Field(description="IR schema version written by bundled handlers.")


class PluginListResponse(BaseModel):
    """Registered plugins in detection order."""

    plugins: List[Manifest] = Field(description="Plugin manifests, in registration (detection) order.")


class DetectResponse(BaseModel):
    """Which plugin claimed an uploaded file.

    RULES:
    - Only returned when some plugin detected the file; otherwise 415
    """

    plugin_id: str = Field(description="Plugin that claimed the file.")
    detected: bool = Field(description="Always true in a 200 response.")
    format: Optional[str] = Field(default=None, description="Native format name reported by the plugin.")
    reason: Optional[str] = Field(default=None, description="Plugin's explanation of the match.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "plugin_id": "format.esword",
                "detected": True,
                "format": "e-Sword",
                "reason": "e-Sword bible database detected",
            }
        ]
    }}


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")
