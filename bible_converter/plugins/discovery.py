"""Discovery of external plugins from plugin.json directories.

WHY: Third-party formats ship as standalone executables. Dropping a
directory with a plugin.json next to the executable into the plugin
directory is all it should take to make the host use it.

HOW: Two layouts are scanned, in sorted order:
  <root>/<plugin>/plugin.json          (flat)
  <root>/<kind>/<plugin>/plugin.json   (grouped by kind, e.g. format/)
Each manifest is validated; incompatible or broken plugins are logged and
skipped so one bad plugin never blocks startup.

RULES:
- A missing root directory yields no plugins, not an error
- min_host_version is checked against config.HOST_VERSION
- The entrypoint is resolved relative to the plugin directory and must
  not escape it
- Plugins run with their own directory as working directory
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from bible_converter import config
from bible_converter.plugins.ipc import ExternalHandler, SubprocessTransport
from bible_converter.plugins.manifest import PLUGIN_KINDS, Manifest, parse_version

logger = logging.getLogger(__name__)

MANIFEST_NAME = "plugin.json"


def _load_manifest(plugin_dir: Path) -> Optional[Manifest]:
    try:
        return Manifest.from_file(plugin_dir / MANIFEST_NAME)
    except (OSError, ValueError) as exc:
        logger.warning("Skipping plugin in %s: invalid %s (%s)", plugin_dir, MANIFEST_NAME, exc)
        return None


def discover_plugins(root: Path) -> List[Tuple[Manifest, Path]]:
    """Return (manifest, plugin_dir) pairs found under root."""
    root = Path(root).resolve()
    if not root.is_dir():
        logger.info("Plugin directory %s does not exist; no external plugins", root)
        return []

    found: List[Tuple[Manifest, Path]] = []
    for entry in sorted(root.iterdir()):
        if not entry.is_dir():
            continue
        if (entry / MANIFEST_NAME).is_file():
            candidates = [entry]
        elif entry.name in PLUGIN_KINDS:
            candidates = [d for d in sorted(entry.iterdir()) if d.is_dir() and (d / MANIFEST_NAME).is_file()]
        else:
            continue
        for plugin_dir in candidates:
            manifest = _load_manifest(plugin_dir)
            if manifest is not None:
                found.append((manifest, plugin_dir))
    return found


def is_compatible(manifest: Manifest, host_version: str = config.HOST_VERSION) -> bool:
    """True if the host satisfies the manifest's min_host_version (if any)."""
    if not manifest.min_host_version:
        return True
    try:
        return parse_version(host_version) >= parse_version(manifest.min_host_version)
    except ValueError as exc:
        logger.warning("Plugin %s: %s", manifest.plugin_id, exc)
        return False


def load_external_handlers(root: Path, timeout: Optional[float] = None) -> List[ExternalHandler]:
    """Build ExternalHandlers for every compatible plugin under root."""
    handlers: List[ExternalHandler] = []
    for manifest, plugin_dir in discover_plugins(root):
        if not is_compatible(manifest):
            logger.warning(
                "Skipping plugin %s: requires host %s, running %s",
                manifest.plugin_id,
                manifest.min_host_version,
                config.HOST_VERSION,
            )
            continue
        if not manifest.entrypoint:
            logger.warning("Skipping plugin %s: manifest has no entrypoint", manifest.plugin_id)
            continue
        entrypoint = (plugin_dir / manifest.entrypoint).resolve()
        if plugin_dir not in entrypoint.parents:
            logger.warning("Skipping plugin %s: entrypoint escapes %s", manifest.plugin_id, plugin_dir)
            continue
        if not entrypoint.is_file():
            logger.warning("Skipping plugin %s: entrypoint %s not found", manifest.plugin_id, entrypoint)
            continue
        transport = SubprocessTransport(
            entrypoint,
            cwd=plugin_dir,
            timeout=timeout if timeout is not None else config.PLUGIN_TIMEOUT_SECONDS,
        )
        handlers.append(ExternalHandler(manifest, transport))
        logger.info("Loaded external plugin %s %s from %s", manifest.plugin_id, manifest.version, plugin_dir)
    return handlers
