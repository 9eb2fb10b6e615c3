"""Hash engine — content, semantic and bundle digests.

All functions are pure. Digests are sha256, truncated to 24 hex characters and
prefixed with their type (`uif:` for contracts, `uifb:` for bundles).
"""

import hashlib
import json
import re
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from ctxgraph.context.models import (
    SCHEMA_VERSION,
    ExportInfo,
    LogicSignature,
    VersionFingerprint,
)

CONTRACT_PREFIX = "uif:"
BUNDLE_PREFIX = "uifb:"
DIGEST_LENGTH = 24

# Stands in for a node whose contract could not be hashed
SKIPPED_DIGEST = f"{CONTRACT_PREFIX}skipped"

# Keys that never take part in a semantic digest
VOLATILE_KEYS = frozenset({"snippet", "comments", "line", "column", "position"})

_HASH_RE = re.compile(rf"^(uif|uifb):[a-f0-9]{{{DIGEST_LENGTH}}}$")


def _digest(payload: bytes, prefix: str) -> str:
    return prefix + hashlib.sha256(payload).hexdigest()[:DIGEST_LENGTH]


def canonical_json(value: Any) -> str:
    """Serialize an already-canonical value deterministically."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonicalize(value: Any) -> Any:
    """Reduce a value to its canonical form.

    Model fields are keyed by alias with volatile fields dropped, mapping keys
    are sorted, list members are sorted by their canonical JSON and `None`
    values are dropped.
    """
    if isinstance(value, BaseModel):
        fields = type(value).model_fields
        return {
            (info.alias or name): canonicalize(getattr(value, name))
            for name, info in sorted(fields.items(), key=lambda kv: kv[1].alias or kv[0])
            if name not in VOLATILE_KEYS and getattr(value, name) is not None
        }

    if isinstance(value, Mapping):
        return {
            str(key): canonicalize(item)
            for key, item in sorted(value.items(), key=lambda kv: str(kv[0]))
            if item is not None
        }

    if isinstance(value, StrEnum):
        return value.value

    if isinstance(value, (list, tuple, set, frozenset)):
        members = [canonicalize(item) for item in value]
        return sorted(members, key=canonical_json)

    return value


def file_hash(data: bytes | str) -> str:
    """Digest of raw file content. Any byte change changes it."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return _digest(data, CONTRACT_PREFIX)


def semantic_hash(
    logic_signature: LogicSignature,
    exports: ExportInfo,
    version: VersionFingerprint,
) -> str:
    """Digest of a contract's observable interface.

    Insensitive to ordering and to anything that is not part of the signature,
    export metadata or version fingerprint.
    """
    payload = {
        "schemaVersion": SCHEMA_VERSION,
        "exports": canonicalize(exports),
        "version": canonicalize(version),
        "signature": canonicalize(logic_signature),
    }
    return _digest(canonical_json(payload).encode("utf-8"), CONTRACT_PREFIX)


def bundle_hash(
    nodes: Iterable[tuple[str, str | None]],
    edges: Iterable[tuple[str, str]],
) -> str:
    """Digest of a packed subgraph.

    Args:
        nodes: (entry_id, semantic_hash) pairs; a `None` hash marks a skipped node
        edges: (from, to) entry id pairs

    Returns:
        Bundle digest, independent of the order nodes and edges are given in
    """
    ordered_nodes = sorted(
        (entry_id, digest if digest else SKIPPED_DIGEST) for entry_id, digest in nodes
    )
    ordered_edges = sorted(edges)
    payload = {
        "schemaVersion": SCHEMA_VERSION,
        "nodes": [{"entryId": e, "semanticHash": h} for e, h in ordered_nodes],
        "edges": [[source, target] for source, target in ordered_edges],
    }
    return _digest(canonical_json(payload).encode("utf-8"), BUNDLE_PREFIX)


def is_valid_hash(value: str) -> bool:
    """Check a digest has the prefixed display form."""
    return bool(_HASH_RE.match(value))
