"""Bible Module Converter: pluggable hub for legacy scripture module formats.

WHY: Bible software authoring tools (e-Sword, MyBible, SWORD, DBL bundles,
flat text exports, ...) each store the same kind of content in unrelated
SQLite schemas, zip bundles and markup dialects. Converting between every
pair directly does not scale. This package routes every conversion through
one canonical intermediate representation (IR) instead.

HOW: Four layers: the IR data model (core.ir), format handlers that read
and write one native format each (formats), a plugin registry plus an
external-process transport (plugins), and an orchestrator that picks the
handler for an input by detection (orchestrator).

RULES:
- All handlers implement the same five operations: detect, ingest,
  enumerate, extract_ir, emit_native
- Adding a new native format = one new handler module, no core changes
- The IR file is the stable contract between extraction and emission
- Every conversion declares its loss class; lossy is never an error
"""

__version__ = "0.5.0"
