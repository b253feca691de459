"""
Canonical JSON Serialization and Hashing

Provides deterministic JSON serialization and fingerprinting used by every
engine to verify that the same published inputs produce the same outputs.

Canonical form:
- Sorted keys (lexicographic, recursive)
- No whitespace
- Arrays keep their order
- Fixed-precision numbers (integral floats render as integers)
- None and non-finite numbers both render as null
- Dates render as ISO 8601

Two hash families are provided:
- fast_hash / combine_hashes: djb2, 8 hex chars. Change detection only,
  never a security primitive.
- content_hash: SHA-256, used for pack fingerprints.
"""
from __future__ import annotations

import hashlib
import json
import math
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable
from uuid import UUID


# Digits kept after the decimal point for non-integral floats
FLOAT_PRECISION = 10

# Integral floats beyond this magnitude keep their float form
_MAX_EXACT_INT = 2 ** 53


# =============================================================================
# Normalization
# =============================================================================

def _normalize_number(value: float) -> Any:
    """Render a float at fixed precision, or None when not finite."""
    if not math.isfinite(value):
        return None
    if value.is_integer() and abs(value) <= _MAX_EXACT_INT:
        return int(value)
    rounded = round(value, FLOAT_PRECISION)
    if rounded.is_integer() and abs(rounded) <= _MAX_EXACT_INT:
        return int(rounded)
    return rounded


def normalize(obj: Any) -> Any:
    """
    Convert a value into plain JSON data with canonical numbers.

    Handles:
    - dataclass: dict of its fields
    - Enum: value
    - datetime/date: ISO 8601
    - Decimal/float: fixed precision
    - set/frozenset: sorted list
    - tuple: list
    """
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, Enum):
        return normalize(obj.value)
    if isinstance(obj, int):
        return obj
    if isinstance(obj, float):
        return _normalize_number(obj)
    if isinstance(obj, Decimal):
        return _normalize_number(float(obj))
    if isinstance(obj, dict):
        return {str(k): normalize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted((normalize(v) for v in obj), key=lambda v: json.dumps(v, sort_keys=True))
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: normalize(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, bytes):
        return obj.hex()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


# =============================================================================
# Canonical JSON
# =============================================================================

def canonical_json(obj: Any) -> str:
    """
    Serialize object to canonical JSON string.

    The output is deterministic: semantically equal values (ignoring key
    order and float representation noise) produce the same string.

    Example:
        >>> canonical_json({"b": 1.0, "a": None})
        '{"a":null,"b":1}'
    """
    return json.dumps(
        normalize(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def deep_equal(a: Any, b: Any) -> bool:
    """Compare two values by canonical form. None only equals None."""
    if a is None or b is None:
        return a is b
    return canonical_json(a) == canonical_json(b)


# =============================================================================
# Hashing
# =============================================================================

def djb2(text: str) -> str:
    """djb2 over a string, rendered as 8 lowercase hex chars."""
    h = 5381
    for ch in text:
        h = ((h << 5) + h + ord(ch)) & 0xFFFFFFFF
    return f"{h:08x}"


def fast_hash(obj: Any) -> str:
    """
    Fast, order-sensitive hash of a value's canonical form.

    Not collision-proof. Used for determinism verification and change
    detection only.
    """
    return djb2(canonical_json(obj))


def combine_hashes(*hashes: str) -> str:
    """Fold an ordered sequence of hashes into one fingerprint."""
    return djb2("|".join(hashes))


def hash_sorted_by_id(items: Iterable[Any]) -> str:
    """Hash a collection of records independently of their list order."""
    data = [normalize(item) for item in items]
    data.sort(key=lambda d: str(d.get("id", "")) if isinstance(d, dict) else "")
    return fast_hash(data)


def content_hash(obj: Any) -> str:
    """
    Compute SHA-256 hash of canonical JSON representation.

    Returns:
        Hex-encoded SHA-256 hash string (64 characters)
    """
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()
