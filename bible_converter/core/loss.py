"""Loss classification, loss reports and content hashing.

WHY: Most native formats carry things the IR cannot hold (RTF styling,
fonts, footnote placement), and the IR carries things some native formats
cannot hold (verse ranges, attribute maps). Rather than failing lossy
conversions, every extraction and emission declares how much it lost and
lists what, so callers that need fidelity can check for themselves.

HOW: LossClass is an ordered string enum (L0 < L1 < L2). LossReport
collects LostElement entries and free-text warnings and serializes to the
same JSON shape the external plugin protocol uses. content_hash() is the
one hashing rule for source provenance, block hashes and blob addresses.

RULES:
- L0: bit-exact reproduction possible
- L1: semantic text fully preserved, presentation formatting discarded
- L2: structural approximation (placeholder or partial corpus)
- A handler must never claim a better class than it achieves
- Loss is never raised as an exception
- Hashes are lowercase hex SHA-256
"""

from __future__ import annotations

import hashlib
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

_CHUNK_SIZE = 1024 * 1024


class LossClass(str, Enum):
    """Declared fidelity tier of one conversion."""

    L0 = "L0"
    L1 = "L1"
    L2 = "L2"

    @property
    def rank(self) -> int:
        return int(self.value[1:])

    @property
    def is_lossless(self) -> bool:
        return self is LossClass.L0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LossClass):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, LossClass):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, LossClass):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, LossClass):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Union[str, "LossClass", None]) -> Optional["LossClass"]:
        """Parse "L1"/"l1"; None and "" give None.

        Raises ValueError for classes this host does not know.
        """
        if value is None or value == "":
            return None
        if isinstance(value, LossClass):
            return value
        return cls(str(value).strip().upper())

    @classmethod
    def worst(cls, *classes: Optional["LossClass"]) -> "LossClass":
        """The least faithful of the given classes (L0 when none given)."""
        present = [c for c in classes if c is not None]
        if not present:
            return cls.L0
        return max(present, key=lambda c: c.rank)


@dataclass
class LostElement:
    """One specific thing that did not survive a conversion.

    path is a location in the source or IR ("Gen.1.1", "cb-12",
    "Details.Font"), element_type names what was lost ("markup",
    "attribute", "book"), reason is a human-readable explanation.
    """

    path: str
    element_type: str
    reason: str
    original_value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "element_type": self.element_type,
            "reason": self.reason,
        }
        if self.original_value is not None:
            data["original_value"] = self.original_value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LostElement:
        return cls(
            path=str(data.get("path", "")),
            element_type=str(data.get("element_type", "")),
            reason=str(data.get("reason", "")),
            original_value=data.get("original_value"),
        )


@dataclass
class LossReport:
    """Everything a single extraction or emission could not carry across.

    WHY: A bare loss class says how bad, not what. Callers inspecting a
    conversion (CLI output, HTTP headers, tests) need the specific elements.

    RULES:
    - source_format / target_format: "IR" on the IR side of the conversion
    - lost_elements: one entry per lossy block/element, not per character
    - warnings: free-text notes that apply to the whole conversion
    """

    source_format: str
    target_format: str
    loss_class: LossClass = LossClass.L0
    lost_elements: List[LostElement] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_lost(
        self,
        path: str,
        element_type: str,
        reason: str,
        original_value: Any = None,
    ) -> LostElement:
        element = LostElement(path, element_type, reason, original_value)
        self.lost_elements.append(element)
        return element

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def lost_of_type(self, element_type: str) -> List[LostElement]:
        return [e for e in self.lost_elements if e.element_type == element_type]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "source_format": self.source_format,
            "target_format": self.target_format,
            "loss_class": self.loss_class.value,
        }
        if self.lost_elements:
            data["lost_elements"] = [e.to_dict() for e in self.lost_elements]
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data

    def summary(self, max_items: int = 10, max_length: int = 120) -> Dict[str, Any]:
        """Size-bounded overview: loss class, lost-element counts per type, first warnings.

        Used where the full report could be arbitrarily large, such as HTTP
        response headers. Element types and warnings are cut to max_length
        characters; "lost_total" and "warning_count" keep the full counts.
        """
        counts = Counter(e.element_type[:max_length] for e in self.lost_elements)
        return {
            "loss_class": self.loss_class.value,
            "lost_total": len(self.lost_elements),
            "lost": dict(counts.most_common(max_items)),
            "warning_count": len(self.warnings),
            "warnings": [w[:max_length] for w in self.warnings[:max_items]],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LossReport:
        return cls(
            source_format=str(data.get("source_format", "")),
            target_format=str(data.get("target_format", "")),
            loss_class=LossClass.parse(data.get("loss_class")) or LossClass.L0,
            lost_elements=[LostElement.from_dict(e) for e in data.get("lost_elements") or []],
            warnings=[str(w) for w in data.get("warnings") or []],
        )


def content_hash(data: Union[bytes, str]) -> str:
    """SHA-256 hex digest of bytes, or of a string encoded as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def file_hash(path: Union[str, Path]) -> str:
    """SHA-256 hex digest of a file's bytes, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
