"""HTML and RTF stripping for native text fields.

WHY: ContentBlock.text must be markup-free, but e-Sword stores RTF and
HTML fragments in its text columns and MyBible uses HTML-ish tags for
Strong's numbers, red letters and footnotes. Adapters need the plain
text and a record of whether anything was dropped, so each lossy block
can be reported exactly once.

HOW: strip_html() and strip_rtf() are regex passes that return a
CleanText carrying the plain text, a ``removed`` flag and the names of
the tags or control words that were discarded. strip_markup() runs both.
Whitespace is collapsed to single spaces and trimmed.

RULES:
- Entities (&amp;, &#x27;) are decoded before tags are stripped, so an
  entity-escaped tag (&lt;i&gt;) is removed like a literal one
- Decoded entities alone are not reported as loss
- Block-level tags (<br>, <p>) become a space so words do not fuse
- Footnote-style elements (<f>, <n>, <S>) are removed with their content
- A CleanText with removed=False means the input was already plain
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

from bible_converter.core.loss import LossReport


@dataclass(frozen=True)
class CleanText:
    text: str
    removed: bool = False
    tags: tuple[str, ...] = ()


_WS_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<(/?)([A-Za-z][A-Za-z0-9:_-]*)[^<>]*>")
# MyBible/e-Sword elements whose content is not part of the verse text
_DROP_CONTENT_RE = re.compile(r"<\s*(f|n|S|m)\b[^<>]*>.*?<\s*/\s*\1\s*>", re.DOTALL)
_BREAK_TAGS = {"br", "p", "div", "li", "pb", "h1", "h2", "h3", "h4", "tr", "td"}

_RTF_CONTROL_RE = re.compile(r"\\([a-zA-Z]+)(-?\d+)? ?")
_RTF_HEX_RE = re.compile(r"\\'([0-9a-fA-F]{2})")
_RTF_UNICODE_RE = re.compile(r"\\u(-?\d+)\??")
_RTF_DESTINATION_RE = re.compile(r"\{\\\*[^{}]*\}")
_RTF_TABLE_RE = re.compile(r"\{\\(fonttbl|colortbl|stylesheet|info)\b[^{}]*(\{[^{}]*\}[^{}]*)*\}")
_RTF_BREAK_WORDS = {"par", "line", "tab", "sect", "page"}


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _unique(names: list[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for name in names:
        seen.setdefault(name, None)
    return tuple(seen)


def strip_html(text: str) -> CleanText:
    """Remove HTML/XML-style tags and decode entities."""
    if "<" not in text and "&" not in text:
        return CleanText(_collapse(text), False, ())

    names: list[str] = []

    def drop_with_content(match: re.Match[str]) -> str:
        names.append(match.group(1))
        return " "

    def replace_tag(match: re.Match[str]) -> str:
        name = match.group(2)
        names.append(name.lower())
        return " " if name.lower() in _BREAK_TAGS else ""

    body = _DROP_CONTENT_RE.sub(drop_with_content, html.unescape(text))
    body = _TAG_RE.sub(replace_tag, body)
    plain = _collapse(body)
    return CleanText(plain, bool(names), _unique(names))


def strip_rtf(text: str) -> CleanText:
    """Remove RTF control words, groups and escapes."""
    if "\\" not in text and "{" not in text and "}" not in text:
        return CleanText(_collapse(text), False, ())

    names: list[str] = []

    def drop_group(match: re.Match[str]) -> str:
        names.append(match.group(1) if match.lastindex else "*")
        return " "

    body = _RTF_TABLE_RE.sub(drop_group, text)
    body = _RTF_DESTINATION_RE.sub(drop_group, body)
    body = body.replace("\\\\", "\x00").replace("\\{", "\x01").replace("\\}", "\x02")
    body = _RTF_HEX_RE.sub(lambda m: bytes([int(m.group(1), 16)]).decode("cp1252", errors="replace"), body)
    body = _RTF_UNICODE_RE.sub(lambda m: chr(int(m.group(1)) % 0x10000), body)

    def replace_control(match: re.Match[str]) -> str:
        word = match.group(1)
        names.append(word)
        return " " if word in _RTF_BREAK_WORDS else ""

    body = _RTF_CONTROL_RE.sub(replace_control, body)
    braces = body.count("{") + body.count("}")
    body = body.replace("{", "").replace("}", "")
    body = body.replace("\x00", "\\").replace("\x01", "{").replace("\x02", "}")
    plain = _collapse(body)
    return CleanText(plain, bool(names) or braces > 0, _unique(names))


def strip_markup(text: str) -> CleanText:
    """Strip RTF first, then HTML, and merge what both removed."""
    rtf = strip_rtf(text)
    markup = strip_html(rtf.text)
    return CleanText(markup.text, rtf.removed or markup.removed, _unique(list(rtf.tags + markup.tags)))


def record_markup_loss(report: LossReport, path: str, original: str, clean: CleanText) -> None:
    """Add one markup LostElement for a block whose markup was removed."""
    if not clean.removed:
        return
    tags = ", ".join(clean.tags) if clean.tags else "markup"
    report.add_lost(
        path=path,
        element_type="markup",
        reason=f"formatting removed during extraction ({tags})",
        original_value=original,
    )
