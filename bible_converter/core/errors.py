"""Exception hierarchy for conversions, plugins and transport.

WHY: Callers must be able to tell an expected, recoverable format outcome
("this bundle has no metadata.xml") from an environment failure ("the
plugin process crashed"). The two tiers are retried, reported and mapped to
exit codes / HTTP statuses differently.

HOW: Everything derives from ConverterError. FormatError and its
subclasses are tier 1 (format-semantic). TransportError is tier 2.
Registry mistakes are configuration errors raised at startup.

RULES:
- Detect never raises any of these for bad input; it reports detected=False
- OSError from the file system is not wrapped; it propagates as tier 2
- Nothing in this package retries automatically
"""

from __future__ import annotations

from typing import List, Optional, Tuple


class ConverterError(Exception):
    """Base class for all errors raised by bible_converter."""


# ---------------------------------------------------------------------------
# Tier 1: format-semantic outcomes
# ---------------------------------------------------------------------------


class FormatError(ConverterError):
    """The input is readable but does not have the structure a handler needs."""


class PathTraversalError(FormatError):
    """An archive member would be written outside the extraction root."""

    def __init__(self, member: str) -> None:
        super().__init__(f"archive member escapes destination root: {member!r}")
        self.member = member


class IRValidationError(FormatError):
    """A serialized Corpus is malformed or violates an IR invariant."""


class UnsupportedOperationError(FormatError):
    """The handler does not implement the requested operation."""


class PluginOperationError(FormatError):
    """A plugin reported status "error" for a well-formed request."""

    def __init__(self, plugin_id: str, command: str, message: str) -> None:
        super().__init__(f"plugin {plugin_id} failed {command}: {message}")
        self.plugin_id = plugin_id
        self.command = command
        self.message = message


class NoHandlerError(ConverterError):
    """No registered handler claimed the input during detection."""

    def __init__(self, path: str, reasons: Optional[List[Tuple[str, str]]] = None) -> None:
        self.path = path
        self.reasons = list(reasons or [])
        details = "; ".join(f"{pid}: {reason}" for pid, reason in self.reasons)
        message = f"no format handler recognised {path}"
        if details:
            message += f" ({details})"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Tier 2: transport and environment failures
# ---------------------------------------------------------------------------


class TransportError(ConverterError):
    """An external plugin did not produce a trustworthy response."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        detail = message
        if exit_code is not None:
            detail += f" (exit code {exit_code})"
        if stderr.strip():
            detail += f" (stderr: {stderr.strip()})"
        super().__init__(detail)
        self.exit_code = exit_code
        self.stderr = stderr


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class PluginRegistrationError(ConverterError):
    """The registry was populated inconsistently (duplicate id, frozen, ...)."""


class PluginNotFoundError(ConverterError):
    def __init__(self, plugin_id: str) -> None:
        super().__init__(f"plugin not found: {plugin_id}")
        self.plugin_id = plugin_id
