"""Plugin manifest models.

WHY: Every handler, in-process or external, is described by the same
manifest so the registry, the CLI listing, the HTTP /plugins endpoint and
external discovery tools all read one shape. External plugins ship it as
plugin.json next to their executable.

HOW: Pydantic models validate plugin.json on load and serialize back with
the wire field names (plugin_id, version, kind, entrypoint,
capabilities.inputs / capabilities.outputs).

RULES:
- plugin_id and version are required and non-empty
- kind is currently always "format"
- entrypoint is empty for in-process handlers
- Capabilities are descriptive; they never gate detection
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

PLUGIN_KINDS = ("format",)

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-+].*)?$")


def parse_version(text: str) -> Tuple[int, int, int]:
    """Parse "1", "1.2", "1.2.3", "v1.2.3-rc1" into a comparable tuple."""
    match = _VERSION_RE.match(text.strip())
    if match is None:
        raise ValueError(f"invalid version string: {text!r}")
    return tuple(int(part or 0) for part in match.groups())  # type: ignore[return-value]


class Capabilities(BaseModel):
    inputs: List[str] = Field(default_factory=list, description="Input kinds the plugin accepts (e.g. 'file', 'directory').")
    outputs: List[str] = Field(default_factory=list, description="Artifacts the plugin produces (e.g. 'artifact.kind:ir').")


class IRSupport(BaseModel):
    """What a format plugin can do with the IR and at what declared loss."""

    can_extract: bool = Field(default=False, description="Implements extract-ir.")
    can_emit: bool = Field(default=False, description="Implements emit-native.")
    loss_class: Optional[str] = Field(default=None, description="Expected loss class of a round trip.")
    formats: List[str] = Field(default_factory=list, description="Native format names handled.")


class Manifest(BaseModel):
    """Identity and capabilities of one plugin."""

    plugin_id: str = Field(description="Unique plugin identifier, e.g. 'format.esword'.")
    version: str = Field(description="Semantic version of the plugin.")
    kind: str = Field(default="format", description="Plugin kind. Only 'format' is defined.")
    entrypoint: str = Field(default="", description="Executable path, relative to the plugin directory.")
    capabilities: Capabilities = Field(default_factory=Capabilities)
    ir_support: Optional[IRSupport] = Field(default=None)
    min_host_version: Optional[str] = Field(default=None, description="Oldest host version this plugin runs on.")
    license: Optional[str] = Field(default=None, description="SPDX license identifier.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "plugin_id": "format.txt",
                "version": "1.0.0",
                "kind": "format",
                "entrypoint": "format-txt",
                "capabilities": {
                    "inputs": ["file"],
                    "outputs": ["artifact.kind:ir"],
                },
            }
        ]
    }}

    @field_validator("plugin_id", "version")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, value: str) -> str:
        if value not in PLUGIN_KINDS:
            raise ValueError(f"unknown plugin kind {value!r}; expected one of {PLUGIN_KINDS}")
        return value

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> Manifest:
        """Load and validate a plugin.json file.

        Raises OSError if the file cannot be read, ValueError (including
        pydantic's ValidationError) if it is not a valid manifest.
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
