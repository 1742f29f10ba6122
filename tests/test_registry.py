"""Tests for the plugin registry, manifests and first-match orchestration.

WHY: Detection order decides which handler converts an input. A registry
that reorders, silently replaces or lets handlers throw during detection
would route files to the wrong parser.

HOW: Registries are built from the bundled handlers and from small fake
handlers defined here; the orchestrator runs against the conftest
fixtures.

RULES:
- detect must never raise for bad input, for every bundled handler
"""

import pytest

from bible_converter.core.errors import (
    NoHandlerError,
    PluginNotFoundError,
    PluginRegistrationError,
    TransportError,
)
from bible_converter.formats import DEFAULT_HANDLERS, HANDLERS
from bible_converter.formats.base import DetectResult, FormatHandler
from bible_converter.orchestrator import Operation, Orchestrator
from bible_converter.plugins.manifest import Capabilities, Manifest, parse_version
from bible_converter.plugins.registry import PluginRegistry


class FakeHandler(FormatHandler):
    """Handler that answers detect with a fixed result and records calls."""

    def __init__(self, plugin_id, detected=False, error=None):
        self._manifest = Manifest(
            plugin_id=plugin_id,
            version="0.1.0",
            capabilities=Capabilities(inputs=["file"], outputs=["artifact.kind:ir"]),
        )
        self.detected = detected
        self.error = error
        self.calls = 0

    @property
    def manifest(self):
        return self._manifest

    def detect(self, path):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return DetectResult(self.detected, format=self.plugin_id, reason="fake")

    def ingest(self, path, output_dir):
        raise NotImplementedError

    def enumerate(self, path):
        raise NotImplementedError

    def extract_ir(self, path, output_dir):
        raise NotImplementedError

    def emit_native(self, ir_path, output_dir):
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


class TestManifest:
    def test_from_file(self, tmp_path):
        path = tmp_path / "plugin.json"
        path.write_text(
            '{"plugin_id": "format.test", "version": "1.0.0", "entrypoint": "run",'
            ' "capabilities": {"inputs": ["file"], "outputs": ["artifact.kind:ir"]}}',
            encoding="utf-8",
        )
        manifest = Manifest.from_file(path)
        assert manifest.plugin_id == "format.test"
        assert manifest.kind == "format"
        assert manifest.capabilities.inputs == ["file"]
        assert manifest.to_dict()["entrypoint"] == "run"

    @pytest.mark.parametrize(
        "data",
        [
            {"version": "1.0.0"},
            {"plugin_id": " ", "version": "1.0.0"},
            {"plugin_id": "x", "version": "1.0.0", "kind": "exporter"},
        ],
    )
    def test_invalid_manifests(self, data):
        with pytest.raises(ValueError):
            Manifest.model_validate(data)

    def test_parse_version(self):
        assert parse_version("1") == (1, 0, 0)
        assert parse_version("v0.5.2-rc1") == (0, 5, 2)
        with pytest.raises(ValueError):
            parse_version("latest")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestPluginRegistry:
    def test_registration_order_is_kept(self):
        registry = PluginRegistry()
        for plugin_id in ("format.b", "format.a", "format.c"):
            registry.register(FakeHandler(plugin_id))
        assert [e.plugin_id for e in registry] == ["format.b", "format.a", "format.c"]
        assert len(registry) == 3

    def test_duplicate_rejected(self):
        registry = PluginRegistry()
        registry.register(FakeHandler("format.a"))
        with pytest.raises(PluginRegistrationError, match="duplicate"):
            registry.register(FakeHandler("format.a"))

    def test_frozen_registry_rejects_registration(self):
        registry = PluginRegistry()
        registry.freeze()
        with pytest.raises(PluginRegistrationError):
            registry.register(FakeHandler("format.a"))

    def test_get(self):
        registry = PluginRegistry()
        handler = FakeHandler("format.a")
        registry.register(handler)
        assert registry.get("format.a") is handler
        assert "format.a" in registry
        with pytest.raises(PluginNotFoundError):
            registry.get("format.missing")

    def test_default_registry(self, registry):
        assert registry.frozen
        assert [m.plugin_id for m in registry.manifests()] == list(HANDLERS)
        assert len(DEFAULT_HANDLERS) == 6

    def test_find_by_capability(self, registry):
        ids = [m.plugin_id for m in registry.find_by_capability(output="artifact.kind:ir", input="directory")]
        assert ids == ["format.sword"]
        assert len(registry.find_by_capability(output="artifact.kind:ir")) == 6

    def test_by_kind(self, registry):
        assert len(registry.by_kind("format")) == 6


# ---------------------------------------------------------------------------
# Detect never raises
# ---------------------------------------------------------------------------


@pytest.fixture(params=["missing", "directory", "empty", "garbage"])
def bad_inputs(request, tmp_path):
    """One kind of unusable input, spelled with every bundled extension."""
    kind = request.param
    if kind == "missing":
        return [tmp_path / "missing.bblx", tmp_path / "missing"]
    if kind == "directory":
        return [tmp_path]
    paths = []
    for name in ("x.bblx", "x.cmtx", "x.SQLite3", "x.json", "x.txt", "x.zip", "x.dbl", "x"):
        path = tmp_path / name
        path.write_bytes(b"" if kind == "empty" else b"\x00\xff\xfegarbage\x89PNG")
        paths.append(path)
    return paths


@pytest.mark.parametrize("handler_class", DEFAULT_HANDLERS, ids=list(HANDLERS))
def test_detect_never_raises(handler_class, bad_inputs):
    handler = handler_class()
    for path in bad_inputs:
        result = handler.detect(path)
        assert result.detected is False
        assert result.reason


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class TestOrchestratorDetect:
    def test_first_match_wins(self, tmp_path):
        registry = PluginRegistry()
        first = FakeHandler("format.no")
        second = FakeHandler("format.yes", detected=True)
        third = FakeHandler("format.also", detected=True)
        for handler in (first, second, third):
            registry.register(handler)

        detection = Orchestrator(registry).detect(tmp_path)
        assert detection.plugin_id == "format.yes"
        assert (first.calls, second.calls, third.calls) == (1, 1, 0)

    def test_no_handler(self, tmp_path):
        registry = PluginRegistry()
        registry.register(FakeHandler("format.no"))
        with pytest.raises(NoHandlerError) as excinfo:
            Orchestrator(registry).detect(tmp_path)
        assert excinfo.value.reasons == [("format.no", "fake")]

    def test_transport_failure_counts_as_not_detected(self, tmp_path):
        registry = PluginRegistry()
        registry.register(FakeHandler("format.broken", error=TransportError("plugin crashed", exit_code=3)))
        registry.register(FakeHandler("format.yes", detected=True))
        assert Orchestrator(registry).detect(tmp_path).plugin_id == "format.yes"

    @pytest.mark.parametrize(
        "fixture, plugin_id",
        [
            ("esword_bible", "format.esword"),
            ("esword_commentary", "format.esword"),
            ("mybible_db", "format.mybible"),
            ("json_bible", "format.json"),
            ("text_bible", "format.txt"),
            ("dbl_bundle", "format.dbl"),
            ("sword_module", "format.sword"),
        ],
    )
    def test_bundled_formats_routed(self, registry, request, fixture, plugin_id):
        path = request.getfixturevalue(fixture)
        assert Orchestrator(registry).detect(path).plugin_id == plugin_id

    def test_unknown_file(self, registry, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG\r\n")
        with pytest.raises(NoHandlerError) as excinfo:
            Orchestrator(registry).detect(path)
        assert len(excinfo.value.reasons) == 6


class TestOrchestratorRun:
    def test_extract(self, registry, mybible_db, tmp_path):
        result = Orchestrator(registry).run(Operation.EXTRACT_IR, mybible_db, tmp_path / "ir")
        assert result.ir_path.endswith("web.ir.json")

    def test_enumerate_needs_no_output_dir(self, registry, dbl_bundle):
        result = Orchestrator(registry).run("enumerate", dbl_bundle)
        assert len(result.entries) == 2

    def test_output_dir_required(self, registry, esword_bible):
        with pytest.raises(ValueError):
            Orchestrator(registry).run(Operation.INGEST, esword_bible)

    def test_emit_native_by_plugin_id(self, registry, text_bible, tmp_path):
        orchestrator = Orchestrator(registry)
        extracted = orchestrator.run(Operation.EXTRACT_IR, text_bible, tmp_path / "ir")
        emitted = orchestrator.emit_native("format.esword", extracted.ir_path, tmp_path / "out")
        assert emitted.output_path.endswith("sample.bblx")
        with pytest.raises(PluginNotFoundError):
            orchestrator.emit_native("format.nope", extracted.ir_path, tmp_path / "out")
