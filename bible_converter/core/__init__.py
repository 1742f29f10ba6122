"""Core data model and storage modules.

WHY: The core package holds what every format handler shares: the IR
dataclasses, reference helpers, loss bookkeeping, the content-addressable
blob store and safe archive extraction. Handlers depend on core, never the
other way round.

HOW: ir.py defines the Corpus tree and its JSON serialization, refs.py the
canonical book table and OSIS identifiers, loss.py loss classes and
reports, blobstore.py hash-sharded raw storage, archive.py scoped zip
extraction, errors.py the exception hierarchy.

RULES:
- IR dataclasses are the contract; evolve them additively only
- Nothing in core knows about any specific native format
"""
