"""
Canonical JSON and SHA-256 helpers for the audit chain.

A payload must hash the same after a round trip through a JSON column,
so every value is first reduced to plain JSON types: money becomes its
normalized decimal string (10.50 and 10.5 are one amount), dates become
ISO strings, UUIDs and enum members their string values.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"cannot hash a value of type {type(value).__name__}")


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_plain)


def to_json_safe(data: Any) -> Any:
    """``data`` as stored in a JSON column, so the stored copy re-hashes identically."""
    return json.loads(canonical_json(data))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return sha256_hex(canonical_json(payload))


def hash_audit_event(
    seq: int,
    entity_type: str,
    entity_id: str,
    action: str,
    actor_id: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Link hash of one audit event; the first event chains from ``GENESIS``."""
    return sha256_hex(
        "|".join(
            (str(seq), entity_type, entity_id, action, actor_id, payload_hash, prev_hash or GENESIS)
        )
    )
