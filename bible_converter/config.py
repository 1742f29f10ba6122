"""Configuration constants and .env loading.

WHY: Plugin timeouts, external plugin discovery and server limits are
deployment concerns. Keeping them in one module with environment overrides
means neither the CLI nor the HTTP server hard-codes them.

HOW: python-dotenv loads the .env file on import. Constants are plain
module-level values read from os.environ with documented defaults.

RULES:
- IR_SCHEMA_VERSION is written into every Corpus produced by a handler
- External plugins are disabled unless BIBLE_CONVERTER_EXTERNAL_PLUGINS=true
- The transport itself has no timeout; PLUGIN_TIMEOUT_SECONDS is the
  deadline the host imposes when it spawns a child plugin
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from bible_converter import __version__

# Load .env from the working directory (where the host is started from)
load_dotenv()

# ---------------------------------------------------------------------------
# IR and plugin host
# ---------------------------------------------------------------------------

IR_SCHEMA_VERSION = "1.0.0"
"""Version string stamped into Corpus.version by the bundled handlers."""

HOST_VERSION = __version__
"""Compared against a plugin manifest's min_host_version."""


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


PLUGIN_TIMEOUT_SECONDS = float(os.getenv("BIBLE_CONVERTER_PLUGIN_TIMEOUT", "60"))
EXTERNAL_PLUGINS_ENABLED = _env_flag("BIBLE_CONVERTER_EXTERNAL_PLUGINS", False)
LOG_LEVEL = os.getenv("BIBLE_CONVERTER_LOG_LEVEL", "INFO").upper()

# ---------------------------------------------------------------------------
# HTTP server
# ---------------------------------------------------------------------------

MAX_UPLOAD_BYTES = int(os.getenv("BIBLE_CONVERTER_MAX_UPLOAD_BYTES", str(256 * 1024 * 1024)))
SERVER_HOST = os.getenv("BIBLE_CONVERTER_HOST", "127.0.0.1")
SERVER_PORT = int(os.getenv("BIBLE_CONVERTER_PORT", "8000"))


def load_plugin_dir() -> Optional[Path]:
    """Return the configured external plugin directory, if any.

    WHY: Discovery of external plugins is opt-in. The directory comes from
    BIBLE_CONVERTER_PLUGIN_DIR and is only honoured when external plugins
    are enabled.

    RULES:
    - Returns None when external plugins are disabled
    - Returns None when the variable is unset or empty
    - The path is not required to exist (discovery logs and skips it)
    """
    if not EXTERNAL_PLUGINS_ENABLED:
        return None
    raw = os.getenv("BIBLE_CONVERTER_PLUGIN_DIR", "").strip()
    if not raw:
        return None
    return Path(raw).expanduser()
