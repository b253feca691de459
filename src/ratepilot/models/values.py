"""
RatePilot Field Values

Field inputs arrive as loosely typed scalars (str | int | float | bool | None).
This module pins down the few coercions the engines are allowed to make, so
no comparison ever relies on Python's implicit truthiness or mixed-type
equality.

Rules:
- Equality (eq, ne, in, notIn) is strict: no coercion, and booleans never
  equal numbers. 1 == 1.0 since both are numbers.
- Ordering comparisons coerce with to_number(), which yields NaN for
  anything that is not numeric. NaN compares false against everything.
- The rating value pool accepts numbers, numeric strings and booleans (1/0).
"""
from __future__ import annotations

import math
import re
from typing import Any, Optional, Union


FieldValue = Union[str, int, float, bool, None]

NAN = float("nan")

_NUMERIC_LITERAL = re.compile(
    r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|Infinity)$"
)


def is_number(value: Any) -> bool:
    """True for int/float values, excluding bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any) -> float:
    """
    Numeric coercion for ordering operators.

    - None -> 0
    - bool -> 1 / 0
    - numbers pass through
    - strings: blank -> 0, numeric literal -> its value, otherwise NaN
    - anything else -> NaN
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if is_number(value):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if not _NUMERIC_LITERAL.match(text):
            return NAN
        if text.endswith("Infinity"):
            return -math.inf if text.startswith("-") else math.inf
        return float(text)
    return NAN


def parse_numeric_string(value: str) -> Optional[float]:
    """Parse a non-blank numeric string, or return None."""
    if not value.strip():
        return None
    number = to_number(value)
    return None if math.isnan(number) else number


def coerce_pool_value(value: Any) -> Optional[Union[int, float]]:
    """
    Coerce a context input for the rating value pool.

    Returns None when the value cannot take part in arithmetic.
    """
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return value
    if isinstance(value, str):
        return parse_numeric_string(value)
    return None


def strict_equals(a: Any, b: Any) -> bool:
    """Equality without coercion."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if is_number(a) and is_number(b):
        return a == b
    if type(a) is not type(b):
        return False
    return a == b


def strict_contains(items: list[Any], value: Any) -> bool:
    """List membership using strict_equals."""
    return any(strict_equals(item, value) for item in items)


def value_type_family(value: Any) -> Optional[str]:
    """
    Coarse type family used for override type checks.

    Returns "boolean", "number", "string", "object", or None for missing.
    Lists and dicts are both "object".
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def format_number(value: Union[int, float]) -> str:
    """Render a number for messages and trace text, without a trailing .0."""
    if isinstance(value, float) and value.is_integer() and math.isfinite(value):
        return str(int(value))
    return str(value)
