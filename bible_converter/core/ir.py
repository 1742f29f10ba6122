"""Intermediate representation dataclasses for converted religious texts.

WHY: Every native module format (e-Sword SQLite, MyBible, DBL zip bundles,
flat text) structures the same content differently. Converting N formats
to each other directly would need N×N converters. The IR is the single
canonical tree every handler extracts into and emits from, so each format
needs exactly one reader and one writer.

HOW: Six dataclasses form a hierarchy:
  Corpus:       one complete converted work (a Bible, a commentary, ...)
  Document:     one addressable sub-unit, usually a book
  ContentBlock: one verse, note or dictionary entry, markup-free
  Anchor:       a character position inside a block
  Span:         a typed range starting at an anchor
  Ref:          a structured scripture citation with its OSIS ID
The module also owns JSON serialization (corpus_to_dict / write_corpus /
read_corpus) and validates IR files against ir_schema.json on read.

RULES:
- Document order is meaningful and preserved exactly on serialization
- ContentBlock.sequence is unique and increasing across the whole corpus
- ContentBlock.text is markup-free; hash is sha256 of text
- Ref.osis_id is always derivable from the other Ref fields
- Corpus.id names output files, so ids with separators, ".." or NUL are rejected
- Attribute values are str, int, float, bool or nested str-keyed maps
- The schema is additive: unknown keys are tolerated and written back
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

import jsonschema

from bible_converter.core.errors import IRValidationError
from bible_converter.core.loss import LossClass, content_hash
from bible_converter.core.refs import build_osis_id, parse_osis_id

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).resolve().parent / "ir_schema.json"

STUB_IR_FILENAME = "corpus.json"

AttributeValue = Union[str, int, float, bool, "dict[str, AttributeValue]"]


class ModuleType(str, Enum):
    BIBLE = "BIBLE"
    COMMENTARY = "COMMENTARY"
    DICTIONARY = "DICTIONARY"
    GENERAL = "GENERAL"

    @classmethod
    def parse(cls, value: str | None) -> ModuleType:
        """Case-insensitive lookup; anything unrecognised reads as GENERAL."""
        if not value:
            return cls.GENERAL
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.GENERAL


class SpanType:
    """Well-known span type names. Span.type stays a plain string."""

    VERSE = "VERSE"
    CHAPTER = "CHAPTER"
    COMMENT = "COMMENT"
    NOTE = "NOTE"
    CROSS_REF = "CROSS_REF"
    TITLE = "TITLE"


def check_attribute_value(value: Any, path: str = "attributes") -> AttributeValue:
    """Validate one attribute value and return its normalized form.

    Nested maps come back with sorted keys so serialized output is
    deterministic. Raises IRValidationError for None, lists and any other
    type outside the variant.
    """
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, dict):
        normalized: dict[str, AttributeValue] = {}
        for key in sorted(value):
            if not isinstance(key, str):
                raise IRValidationError(f"{path}: attribute keys must be strings, got {key!r}")
            normalized[key] = check_attribute_value(value[key], f"{path}.{key}")
        return normalized
    raise IRValidationError(
        f"{path}: unsupported attribute value type {type(value).__name__}"
    )


def check_attributes(attributes: dict[str, Any], path: str = "attributes") -> dict[str, AttributeValue]:
    return check_attribute_value(attributes, path)  # type: ignore[return-value]


@dataclass
class Ref:
    """A structured scripture citation.

    RULES:
    - book is an OSIS book code ("Gen", "Matt")
    - chapter 0 / verse 0 mean whole book / whole chapter
    - verse_end and chapter_end are set only for ranges
    - osis_id must equal build_osis_id() of the other fields
    """

    book: str
    chapter: int = 0
    verse: int = 0
    verse_end: int | None = None
    chapter_end: int | None = None
    osis_id: str = ""

    @classmethod
    def create(
        cls,
        book: str,
        chapter: int = 0,
        verse: int = 0,
        verse_end: int | None = None,
        chapter_end: int | None = None,
    ) -> Ref:
        return cls(
            book=book,
            chapter=chapter,
            verse=verse,
            verse_end=verse_end,
            chapter_end=chapter_end,
            osis_id=build_osis_id(book, chapter, verse, verse_end, chapter_end),
        )

    @classmethod
    def parse(cls, osis_id: str) -> Ref:
        parts = parse_osis_id(osis_id)
        return cls.create(parts.book, parts.chapter, parts.verse, parts.verse_end, parts.chapter_end)

    def expected_osis_id(self) -> str:
        return build_osis_id(self.book, self.chapter, self.verse, self.verse_end, self.chapter_end)


@dataclass
class Span:
    id: str
    type: str
    start_anchor_id: str
    end_anchor_id: str | None = None
    ref: Ref | None = None


@dataclass
class Anchor:
    id: str
    position: int = 0
    spans: list[Span] = field(default_factory=list)


@dataclass
class ContentBlock:
    """The smallest addressable unit of text.

    WHY: Verses, commentary notes and dictionary entries are what every
    format ultimately stores. Keeping them as flat, hashed, markup-free
    blocks lets emitters rebuild any native layout from the same data and
    lets callers detect changed text by hash alone.

    HOW: Use ContentBlock.create() so the hash is computed from the text.
    References are attached through anchors and spans, not baked into the
    text, so the same block can carry a verse ref and cross-refs at once.

    RULES:
    - text: markup already stripped by the extracting handler
    - hash: sha256 hex of text (verify_hash() recomputes)
    - sequence: corpus-wide, strictly increasing in document order
    - attributes: tagged-variant values only (see check_attribute_value)
    """

    id: str
    sequence: int
    text: str
    hash: str = ""
    attributes: dict[str, AttributeValue] = field(default_factory=dict)
    anchors: list[Anchor] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        id: str,
        sequence: int,
        text: str,
        attributes: dict[str, Any] | None = None,
        anchors: list[Anchor] | None = None,
    ) -> ContentBlock:
        return cls(
            id=id,
            sequence=sequence,
            text=text,
            hash=content_hash(text),
            attributes=check_attributes(attributes or {}, f"{id}.attributes"),
            anchors=list(anchors or []),
        )

    def verify_hash(self) -> bool:
        return self.hash == content_hash(self.text)


@dataclass
class Document:
    id: str
    title: str = ""
    order: int = 0
    attributes: dict[str, str] = field(default_factory=dict)
    content_blocks: list[ContentBlock] = field(default_factory=list)


@dataclass
class Corpus:
    """Root of one converted work.

    WHY: Emitters need the whole work at once (titles, language, module
    type, every book in order) plus provenance so a converted file can be
    traced back to the exact source bytes.

    HOW: Handlers build documents, append blocks with a corpus-wide
    sequence counter, call sort_documents() and hand the result to
    write_corpus(). validate() checks the structural invariants and is
    run by write_corpus() before anything touches disk.

    RULES:
    - id: derived from the source filename, stable across conversions
    - version: IR schema version string (config.IR_SCHEMA_VERSION)
    - source_hash: sha256 of the original bytes, recorded not re-verified
    - loss_class: the extraction's declared loss, advisory only
    - attributes: open str → str map for format-specific metadata
    - extra: unknown top-level keys from a read IR file, written back as-is
    """

    id: str
    version: str
    module_type: ModuleType = ModuleType.BIBLE
    source_format: str = ""
    source_hash: str = ""
    loss_class: LossClass | None = None
    language: str = ""
    title: str = ""
    description: str = ""
    versification: str = ""
    publisher: str = ""
    rights: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    documents: list[Document] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def sort_documents(self) -> None:
        """Order documents by Document.order, keeping ties in insertion order."""
        self.documents.sort(key=lambda d: d.order)

    def iter_blocks(self):
        for document in self.documents:
            for block in document.content_blocks:
                yield document, block

    def block_count(self) -> int:
        return sum(len(d.content_blocks) for d in self.documents)

    def problems(self) -> list[str]:
        """List every invariant violation found in the tree."""
        found: list[str] = []
        if not self.id:
            found.append("corpus id is empty")
        last_sequence: int | None = None
        seen_sequences: set[int] = set()
        for document, block in self.iter_blocks():
            where = f"{document.id}/{block.id}"
            if block.sequence in seen_sequences:
                found.append(f"{where}: duplicate sequence {block.sequence}")
            elif last_sequence is not None and block.sequence < last_sequence:
                found.append(f"{where}: sequence {block.sequence} follows {last_sequence}")
            seen_sequences.add(block.sequence)
            last_sequence = block.sequence
            if not block.verify_hash():
                found.append(f"{where}: hash does not match text")
            anchor_ids = {a.id for a in block.anchors}
            for anchor in block.anchors:
                if anchor.position < 0 or anchor.position > len(block.text):
                    found.append(f"{where}: anchor {anchor.id} position {anchor.position} out of range")
                for span in anchor.spans:
                    if span.start_anchor_id not in anchor_ids:
                        found.append(f"{where}: span {span.id} starts at unknown anchor {span.start_anchor_id}")
                    if span.end_anchor_id and span.end_anchor_id not in anchor_ids:
                        found.append(f"{where}: span {span.id} ends at unknown anchor {span.end_anchor_id}")
                    if span.ref is not None and span.ref.osis_id != span.ref.expected_osis_id():
                        found.append(
                            f"{where}: span {span.id} osis_id {span.ref.osis_id!r} "
                            f"does not match {span.ref.expected_osis_id()!r}"
                        )
        return found

    def validate(self) -> None:
        found = self.problems()
        if found:
            raise IRValidationError(f"corpus {self.id!r} is invalid: " + "; ".join(found))


def check_corpus_id(corpus_id: str) -> str:
    """Return corpus_id if it is usable as a file name, else raise IRValidationError.

    Corpus ids come from file content and from hand-edited IR files, and
    every handler names its outputs after them.
    """
    if not corpus_id or corpus_id in (".", ".."):
        raise IRValidationError(f"corpus id {corpus_id!r} cannot be used as a file name")
    if any(ch in corpus_id for ch in ("/", "\\", "\x00")) or ".." in corpus_id:
        raise IRValidationError(f"corpus id {corpus_id!r} must not contain path separators, '..' or NUL")
    return corpus_id


def ir_filename(corpus_id: str) -> str:
    return f"{check_corpus_id(corpus_id)}.ir.json"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

_CORPUS_KEYS = {
    "id", "version", "module_type", "source_format", "source_hash", "loss_class",
    "language", "title", "description", "versification", "publisher", "rights",
    "attributes", "documents",
}


def _ref_to_dict(ref: Ref) -> dict[str, Any]:
    data: dict[str, Any] = {"book": ref.book}
    if ref.chapter:
        data["chapter"] = ref.chapter
    if ref.verse:
        data["verse"] = ref.verse
    if ref.verse_end is not None:
        data["verse_end"] = ref.verse_end
    if ref.chapter_end is not None:
        data["chapter_end"] = ref.chapter_end
    data["osis_id"] = ref.osis_id
    return data


def _span_to_dict(span: Span) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": span.id,
        "type": span.type,
        "start_anchor_id": span.start_anchor_id,
    }
    if span.end_anchor_id:
        data["end_anchor_id"] = span.end_anchor_id
    if span.ref is not None:
        data["ref"] = _ref_to_dict(span.ref)
    return data


def _block_to_dict(block: ContentBlock) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": block.id,
        "sequence": block.sequence,
        "text": block.text,
        "hash": block.hash,
    }
    if block.attributes:
        data["attributes"] = check_attributes(block.attributes, f"{block.id}.attributes")
    if block.anchors:
        data["anchors"] = [
            {
                "id": a.id,
                "position": a.position,
                **({"spans": [_span_to_dict(s) for s in a.spans]} if a.spans else {}),
            }
            for a in block.anchors
        ]
    return data


def corpus_to_dict(corpus: Corpus) -> dict[str, Any]:
    """Convert a Corpus to its JSON-ready dict, omitting empty optional fields."""
    data: dict[str, Any] = {
        "id": corpus.id,
        "version": corpus.version,
        "module_type": corpus.module_type.value,
    }
    for key in ("source_format", "source_hash"):
        value = getattr(corpus, key)
        if value:
            data[key] = value
    if corpus.loss_class is not None:
        data["loss_class"] = corpus.loss_class.value
    for key in ("language", "title", "description", "versification", "publisher", "rights"):
        value = getattr(corpus, key)
        if value:
            data[key] = value
    if corpus.attributes:
        data["attributes"] = dict(corpus.attributes)

    documents = []
    for doc in corpus.documents:
        doc_data: dict[str, Any] = {"id": doc.id}
        if doc.title:
            doc_data["title"] = doc.title
        doc_data["order"] = doc.order
        if doc.attributes:
            doc_data["attributes"] = dict(doc.attributes)
        doc_data["content_blocks"] = [_block_to_dict(b) for b in doc.content_blocks]
        documents.append(doc_data)
    data["documents"] = documents

    for key, value in corpus.extra.items():
        if key not in data:
            data[key] = value
    return data


def _ref_from_dict(data: dict[str, Any]) -> Ref:
    return Ref(
        book=data["book"],
        chapter=int(data.get("chapter", 0)),
        verse=int(data.get("verse", 0)),
        verse_end=data.get("verse_end"),
        chapter_end=data.get("chapter_end"),
        osis_id=data.get("osis_id", ""),
    )


def _block_from_dict(data: dict[str, Any]) -> ContentBlock:
    anchors = []
    for a in data.get("anchors") or []:
        spans = [
            Span(
                id=s["id"],
                type=s["type"],
                start_anchor_id=s["start_anchor_id"],
                end_anchor_id=s.get("end_anchor_id"),
                ref=_ref_from_dict(s["ref"]) if s.get("ref") else None,
            )
            for s in a.get("spans") or []
        ]
        anchors.append(Anchor(id=a["id"], position=int(a.get("position", 0)), spans=spans))
    text = data.get("text", "")
    return ContentBlock(
        id=data["id"],
        sequence=int(data["sequence"]),
        text=text,
        hash=data.get("hash") or content_hash(text),
        attributes=check_attributes(data.get("attributes") or {}, f"{data['id']}.attributes"),
        anchors=anchors,
    )


def corpus_from_dict(data: dict[str, Any]) -> Corpus:
    """Build a Corpus from a parsed IR dict. Does not run schema validation."""
    try:
        loss_class = LossClass.parse(data.get("loss_class"))
    except ValueError as exc:
        raise IRValidationError(f"unknown loss_class {data.get('loss_class')!r}") from exc

    documents = [
        Document(
            id=d["id"],
            title=d.get("title", ""),
            order=int(d.get("order", 0)),
            attributes={k: str(v) for k, v in (d.get("attributes") or {}).items()},
            content_blocks=[_block_from_dict(b) for b in d.get("content_blocks") or []],
        )
        for d in data.get("documents") or []
    ]
    return Corpus(
        id=data["id"],
        version=data.get("version", ""),
        module_type=ModuleType.parse(data.get("module_type")),
        source_format=data.get("source_format", ""),
        source_hash=data.get("source_hash", ""),
        loss_class=loss_class,
        language=data.get("language", ""),
        title=data.get("title", ""),
        description=data.get("description", ""),
        versification=data.get("versification", ""),
        publisher=data.get("publisher", ""),
        rights=data.get("rights", ""),
        attributes={k: str(v) for k, v in (data.get("attributes") or {}).items()},
        documents=documents,
        extra={k: v for k, v in data.items() if k not in _CORPUS_KEYS},
    )


_CACHED_SCHEMA: dict[str, Any] | None = None


def _get_schema() -> dict[str, Any]:
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(_SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


def validate_ir_dict(data: Any) -> None:
    """Validate a parsed IR document against ir_schema.json."""
    try:
        jsonschema.validate(instance=data, schema=_get_schema())
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise IRValidationError(f"IR file does not match schema at {location}: {exc.message}") from exc


def write_corpus(corpus: Corpus, path: str | Path) -> Path:
    """Validate and write a Corpus as indented UTF-8 JSON. Returns the path."""
    corpus.validate()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(corpus_to_dict(corpus), indent=2, ensure_ascii=False)
    path.write_text(content + "\n", encoding="utf-8")
    logger.debug("Wrote IR %s (%d documents)", path, len(corpus.documents))
    return path


def read_corpus(path: str | Path) -> Corpus:
    """Read and schema-validate an IR file.

    Raises IRValidationError for malformed JSON or schema violations.
    OSError from opening the file propagates unchanged.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise IRValidationError(f"{path.name} is not valid JSON: {exc}") from exc
    validate_ir_dict(data)
    return corpus_from_dict(data)
