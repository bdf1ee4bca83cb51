"""Encode/decode native JSON values to/from Firestore REST typed values.

Firestore's REST API represents every field as a single-key object naming
its type, e.g. ``{"integerValue": "3"}`` or ``{"mapValue": {"fields": {...}}}``.
Integers travel as decimal strings so 64-bit values survive JSON; ``int``
and ``float`` keep distinct tags, so ``3`` and ``3.0`` are observably
different on the wire while decoding to equal numbers.
"""

from collections.abc import Mapping
from typing import Any

TypedValue = dict[str, Any]


def encode_value(value: Any) -> TypedValue:
    """Convert a native JSON value to a Firestore typed value.

    Raises:
        TypeError: If ``value`` is not a JSON value.
    """
    if value is None:
        return {"nullValue": None}
    # bool is a subclass of int and must be checked first
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Unsupported value type for Firestore encoding: {type(value).__name__}")


def encode_fields(data: Mapping[str, Any]) -> dict[str, TypedValue]:
    """Convert a native mapping to a Firestore ``fields`` object."""
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_value(value: TypedValue) -> Any:
    """Convert a Firestore typed value back to a native JSON value.

    Unknown tags (timestamps, references, geo points) decode to None.
    """
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return value["booleanValue"]
    if "nullValue" in value:
        return None
    if "mapValue" in value:
        return decode_fields((value["mapValue"] or {}).get("fields"))
    if "arrayValue" in value:
        values = (value["arrayValue"] or {}).get("values") or []
        return [decode_value(v) for v in values]
    return None


def decode_fields(fields: Mapping[str, TypedValue] | None) -> dict[str, Any]:
    """Convert a Firestore ``fields`` object to a native dict."""
    if not fields:
        return {}
    return {key: decode_value(value) for key, value in fields.items()}
