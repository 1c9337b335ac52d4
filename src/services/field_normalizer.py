"""Normalization of loosely-typed product fields.

Form posts, JSON bodies and the two product relations all encode the same
values differently (strings, arrays, JSON-encoded strings, objects). These
helpers turn them into canonical scalars and never raise on malformed input.
"""

import json
import math
import re
from typing import Any

from src.services.pricing import round2

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_STRICT_INT_RE = re.compile(r"^\d+$")
_CAMEL_BOUNDARY_RE = re.compile(r"([A-Z])")
_SNAKE_BOUNDARY_RE = re.compile(r"_([a-z])")


def strip_quotes(value: Any) -> Any:
    """Remove leading/trailing quote characters from an identifier."""
    if value is None:
        return value
    return re.sub(r"^['\"]+|['\"]+$", "", str(value))


def is_strict_int(value: Any) -> bool:
    """True for non-negative integers and their plain digit-string form."""
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, int):
        return value >= 0
    return bool(_STRICT_INT_RE.match(str(value).strip()))


def parse_number(raw: Any) -> float | None:
    """
    Parse a finite number.

    Returns None for missing, empty or unparsable input so that an absent field
    can be told apart from a field that is zero.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_discount_percent(raw: Any) -> float | None:
    """
    Parse a percentage discount such as ``30``, ``"30"`` or ``"12.5%"``.

    The first numeric substring is used. Values outside [0, 100] are rejected.
    The result is rounded to two decimals.
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    if not text:
        return None
    match = _NUMBER_RE.search(text)
    if not match:
        return None
    value = float(match.group(1))
    if not math.isfinite(value) or value < 0 or value > 100:
        return None
    return round2(value)


def _split_members(values) -> set[str]:
    return {str(v).strip() for v in values if v is not None and str(v).strip()}


def parse_payment_methods(raw: Any) -> set[str]:
    """
    Parse a payment-method set.

    Accepts a list, a dict (its values are the members), a JSON array string or
    a comma-separated string. Blank members are dropped.
    """
    if raw is None:
        return set()
    if isinstance(raw, (list, tuple, set, frozenset)):
        return _split_members(raw)
    if isinstance(raw, dict):
        return _split_members(raw.values())

    text = str(raw).strip()
    if not text:
        return set()
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return _split_members(parsed)
    if isinstance(parsed, str):
        text = parsed
    return _split_members(text.split(","))


def normalize_payment_methods(raw: Any) -> list[str]:
    """Canonical list form of a payment-method set, used for storage and responses."""
    return sorted(parse_payment_methods(raw))


def parse_flag(raw: Any) -> bool:
    return raw is True or (isinstance(raw, str) and raw.strip().lower() == "true")


def parse_json_field(raw: Any) -> Any:
    """Decode a JSON-encoded string (e.g. a FAQ list from a form post), or pass the value through."""
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


def to_snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub(r"_\1", key).lower()


def to_camel_case(key: str) -> str:
    return _SNAKE_BOUNDARY_RE.sub(lambda m: m.group(1).upper(), key)


def key_variants(key: str) -> set[str]:
    """A field name with its snake_case and camelCase siblings."""
    return {key, to_snake_case(key), to_camel_case(key)}
