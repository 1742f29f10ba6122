"""Explicit, ordered plugin registry.

WHY: Detection is first-match, so which handlers exist and in what order
must be visible in one place and fixed before any conversion starts. A
registry object built by the host (rather than handlers registering
themselves on import) makes that order explicit and lets tests build
registries with exactly the handlers they need.

HOW: PluginRegistry keeps (manifest, handler) entries in a list plus an
index by plugin_id. The host registers in-process handlers first, then
external plugins, then calls freeze(). build_default_registry() does
exactly that for the CLI and the HTTP server.

RULES:
- plugin_id is unique; a duplicate is a configuration error
- Iteration order is registration order
- After freeze() the registry is read-only and safe to share
- Capabilities are for discovery only; they never gate detection
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from bible_converter import config
from bible_converter.core.errors import PluginNotFoundError, PluginRegistrationError
from bible_converter.formats import DEFAULT_HANDLERS
from bible_converter.formats.base import FormatHandler
from bible_converter.plugins.discovery import load_external_handlers
from bible_converter.plugins.manifest import Manifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    manifest: Manifest
    handler: FormatHandler

    @property
    def plugin_id(self) -> str:
        return self.manifest.plugin_id


class PluginRegistry:
    def __init__(self) -> None:
        self._entries: list[RegistryEntry] = []
        self._by_id: dict[str, RegistryEntry] = {}
        self._frozen = False

    # -- population ---------------------------------------------------------

    def register(self, handler: FormatHandler) -> RegistryEntry:
        """Add a handler under its manifest's plugin_id."""
        if self._frozen:
            raise PluginRegistrationError("registry is frozen; register plugins before startup completes")
        manifest = handler.manifest
        if manifest.plugin_id in self._by_id:
            raise PluginRegistrationError(f"duplicate plugin_id: {manifest.plugin_id}")
        entry = RegistryEntry(manifest=manifest, handler=handler)
        self._entries.append(entry)
        self._by_id[manifest.plugin_id] = entry
        logger.debug("Registered plugin %s %s", manifest.plugin_id, manifest.version)
        return entry

    def register_many(self, constructors: Iterable[Callable[[], FormatHandler]]) -> None:
        for constructor in constructors:
            self.register(constructor())

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- lookup -------------------------------------------------------------

    def get(self, plugin_id: str) -> FormatHandler:
        entry = self._by_id.get(plugin_id)
        if entry is None:
            raise PluginNotFoundError(plugin_id)
        return entry.handler

    def entries(self) -> list[RegistryEntry]:
        return list(self._entries)

    def handlers(self) -> list[FormatHandler]:
        return [entry.handler for entry in self._entries]

    def manifests(self) -> list[Manifest]:
        return [entry.manifest for entry in self._entries]

    def by_kind(self, kind: str) -> list[FormatHandler]:
        return [entry.handler for entry in self._entries if entry.manifest.kind == kind]

    def find_by_capability(self, output: Optional[str] = None, input: Optional[str] = None) -> list[Manifest]:
        """Manifests whose capabilities list the given output and/or input."""
        matches = []
        for entry in self._entries:
            capabilities = entry.manifest.capabilities
            if output is not None and output not in capabilities.outputs:
                continue
            if input is not None and input not in capabilities.inputs:
                continue
            matches.append(entry.manifest)
        return matches

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._by_id

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries))


def build_default_registry(
    extra: Iterable[FormatHandler] = (),
    plugin_dir: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> PluginRegistry:
    """Build and freeze the registry used by the CLI and the HTTP server.

    Order: bundled handlers (formats.DEFAULT_HANDLERS), then ``extra``,
    then external plugins discovered in plugin_dir (or the configured
    directory when external plugins are enabled).
    """
    registry = PluginRegistry()
    registry.register_many(DEFAULT_HANDLERS)
    for handler in extra:
        registry.register(handler)

    directory = plugin_dir if plugin_dir is not None else config.load_plugin_dir()
    if directory is not None:
        for handler in load_external_handlers(directory, timeout=timeout):
            if handler.plugin_id in registry:
                logger.warning("External plugin %s shadows a registered plugin; skipped", handler.plugin_id)
                continue
            registry.register(handler)

    registry.freeze()
    logger.info("Plugin registry ready: %s", ", ".join(e.plugin_id for e in registry.entries()))
    return registry
