"""Command-line host for the converter.

WHY: Most conversions are one-off jobs run from a terminal or a shell
script. The CLI exposes every handler operation, a one-step convert, the
HTTP server and the child side of the plugin protocol behind one command.

HOW: argparse subcommands. Each command builds the default registry
(bundled handlers plus external plugins from --plugin-dir), runs one
orchestrator call and prints the result as JSON on stdout. Status and
errors go to stderr so the output can be piped into jq.

RULES:
- Exit 0 on success, 1 on format/configuration errors (tier 1),
  2 on transport and file system failures (tier 2)
- ``detect`` exits 1 when no handler claims the input
- ``convert`` keeps the intermediate IR only when --ir-dir is given
- ``plugin`` serves one bundled handler over stdin/stdout and never
  loads external plugins
- Python 3.9 compatible: no match/case, no X | Y unions
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from bible_converter import __version__, config
from bible_converter.core.errors import ConverterError, PluginNotFoundError, TransportError
from bible_converter.core.loss import LossClass
from bible_converter.formats import HANDLERS
from bible_converter.orchestrator import Operation, Orchestrator
from bible_converter.plugins.ipc import serve
from bible_converter.plugins.registry import PluginRegistry, build_default_registry

EXIT_OK = 0
EXIT_FORMAT_ERROR = 1
EXIT_TRANSPORT_ERROR = 2


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _emit_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _registry(args: argparse.Namespace) -> PluginRegistry:
    plugin_dir = Path(args.plugin_dir) if args.plugin_dir else None
    return build_default_registry(plugin_dir=plugin_dir, timeout=args.timeout)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_plugins(args: argparse.Namespace) -> int:
    _emit_json([manifest.to_dict() for manifest in _registry(args).manifests()])
    return EXIT_OK


def _cmd_detect(args: argparse.Namespace) -> int:
    detection = Orchestrator(_registry(args)).detect(args.path)
    data: Dict[str, Any] = {"plugin_id": detection.plugin_id}
    data.update(detection.result.to_dict())
    _emit_json(data)
    return EXIT_OK


def _cmd_operation(args: argparse.Namespace) -> int:
    operation = Operation(args.command)
    output_dir = getattr(args, "output_dir", None)
    result = Orchestrator(_registry(args)).run(operation, args.path, output_dir)
    _emit_json(result.to_dict())
    return EXIT_OK


def _cmd_emit_native(args: argparse.Namespace) -> int:
    result = Orchestrator(_registry(args)).emit_native(args.plugin_id, args.ir_path, args.output_dir)
    _emit_json(result.to_dict())
    _status("Wrote {} ({})".format(result.output_path, result.loss_class.value))
    return EXIT_OK


def _convert(orchestrator: Orchestrator, args: argparse.Namespace, ir_dir: Path) -> Dict[str, Any]:
    source = orchestrator.detect(args.path)
    _status("Detected {} ({})".format(source.result.format or source.plugin_id, source.plugin_id))
    extracted = source.handler.extract_ir(args.path, ir_dir)
    _status("  Extracted IR ({})".format(extracted.loss_class.value))
    emitted = orchestrator.emit_native(args.target, extracted.ir_path, args.output_dir)
    _status("  Wrote {} ({})".format(emitted.output_path, emitted.loss_class.value))
    return {
        "source_plugin": source.plugin_id,
        "target_plugin": args.target,
        "loss_class": LossClass.worst(extracted.loss_class, emitted.loss_class).value,
        "extract": extracted.to_dict(),
        "emit": emitted.to_dict(),
    }


def _cmd_convert(args: argparse.Namespace) -> int:
    orchestrator = Orchestrator(_registry(args))
    # Fail on an unknown target before doing any work
    orchestrator.registry.get(args.target)
    if args.ir_dir:
        summary = _convert(orchestrator, args, Path(args.ir_dir))
    else:
        with tempfile.TemporaryDirectory(prefix="bible-converter-ir-") as tmp:
            summary = _convert(orchestrator, args, Path(tmp))
            summary["extract"].pop("ir_path", None)
    _emit_json(summary)
    return EXIT_OK


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from bible_converter.server.app import create_app

    app = create_app(_registry(args))
    uvicorn.run(app, host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())
    return EXIT_OK


def _cmd_plugin(args: argparse.Namespace) -> int:
    handler_class = HANDLERS.get(args.plugin_id)
    if handler_class is None:
        raise PluginNotFoundError(args.plugin_id)
    return serve(handler_class())


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    Separate from main() so tests can inspect it without running anything.
    """
    parser = argparse.ArgumentParser(
        prog="bible_converter",
        description="Convert Bible, commentary and dictionary modules between native "
                    "formats through a canonical intermediate representation (IR).",
    )
    parser.add_argument("--version", action="version", version="%(prog)s {}".format(__version__))
    parser.add_argument(
        "--plugin-dir",
        default=None,
        help="Directory of external plugins (plugin.json + executable). "
             "Default: BIBLE_CONVERTER_PLUGIN_DIR when external plugins are enabled.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline in seconds for each external plugin call "
             "(default: {}).".format(config.PLUGIN_TIMEOUT_SECONDS),
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("plugins", help="List registered plugins as JSON.")
    p.set_defaults(func=_cmd_plugins)

    p = sub.add_parser("detect", help="Report which plugin claims a file or directory.")
    p.add_argument("path")
    p.set_defaults(func=_cmd_detect)

    p = sub.add_parser("ingest", help="Store the raw input in a content-addressed blob store.")
    p.add_argument("path")
    p.add_argument("-o", "--output-dir", required=True, help="Blob store root.")
    p.set_defaults(func=_cmd_operation)

    p = sub.add_parser("enumerate", help="List the members of an input (tables, zip entries, files).")
    p.add_argument("path")
    p.set_defaults(func=_cmd_operation)

    p = sub.add_parser("extract-ir", help="Convert an input to an IR file.")
    p.add_argument("path")
    p.add_argument("-o", "--output-dir", required=True, help="Directory for the IR file.")
    p.set_defaults(func=_cmd_operation)

    p = sub.add_parser("emit-native", help="Write a native file from an IR file.")
    p.add_argument("plugin_id", help="Target plugin, e.g. format.mybible.")
    p.add_argument("ir_path")
    p.add_argument("-o", "--output-dir", required=True)
    p.set_defaults(func=_cmd_emit_native)

    p = sub.add_parser("convert", help="Extract the IR from an input and emit it in another format.")
    p.add_argument("path")
    p.add_argument("--to", dest="target", required=True, help="Target plugin id, e.g. format.esword.")
    p.add_argument("-o", "--output-dir", required=True)
    p.add_argument("--ir-dir", default=None, help="Keep the intermediate IR file in this directory.")
    p.set_defaults(func=_cmd_convert)

    p = sub.add_parser("serve", help="Run the HTTP API.")
    p.add_argument("--host", default=config.SERVER_HOST, help="Bind address (default: %(default)s).")
    p.add_argument("--port", type=int, default=config.SERVER_PORT, help="Port (default: %(default)s).")
    p.set_defaults(func=_cmd_serve)

    p = sub.add_parser("plugin", help="Serve one bundled plugin over the JSON stdin/stdout protocol.")
    p.add_argument("plugin_id")
    p.set_defaults(func=_cmd_plugin)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for ``python -m bible_converter``. Returns the exit code.

    argv=None means use sys.argv; an explicit list is for tests.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=config.LOG_LEVEL,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except TransportError as exc:
        _status("Error: {}".format(exc))
        return EXIT_TRANSPORT_ERROR
    except OSError as exc:
        _status("Error: {}".format(exc))
        return EXIT_TRANSPORT_ERROR
    except (ConverterError, ValueError) as exc:
        _status("Error: {}".format(exc))
        return EXIT_FORMAT_ERROR
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
