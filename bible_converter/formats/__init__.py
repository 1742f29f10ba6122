"""In-process format handlers, in detection order.

WHY: The registry, the CLI and the HTTP API need one ordered list of the
bundled adapters. Detection is first-match in registration order, so the
order of this list is part of the behavior.

HOW: HANDLERS maps plugin ids to handler *classes* (not instances);
DEFAULT_HANDLERS is the same classes in registration order. The registry
instantiates them: ``registry.register_many(DEFAULT_HANDLERS)``.

RULES:
- Keys are the handlers' manifest plugin_id values
- Specific checks (SQLite tables, zip members) come before generic text
- Every handler listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bible_converter.formats.dbl import DBLHandler
from bible_converter.formats.esword import ESwordHandler
from bible_converter.formats.json_bible import JSONBibleHandler
from bible_converter.formats.mybible import MyBibleHandler
from bible_converter.formats.sword import SwordHandler
from bible_converter.formats.txt import TextHandler

if TYPE_CHECKING:
    from bible_converter.formats.base import FormatHandler

HANDLERS: dict[str, type[FormatHandler]] = {
    "format.esword": ESwordHandler,
    "format.mybible": MyBibleHandler,
    "format.json": JSONBibleHandler,
    "format.txt": TextHandler,
    "format.dbl": DBLHandler,
    "format.sword": SwordHandler,
}

DEFAULT_HANDLERS: tuple[type[FormatHandler], ...] = tuple(HANDLERS.values())
