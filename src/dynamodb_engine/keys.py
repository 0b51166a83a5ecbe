from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .codec import encode


def encode_key_value(value: Any) -> dict[str, Any]:
    """Serialize one scalar key value (String, Number or Boolean)."""
    if isinstance(value, str) and not value:
        raise TypeError("key attributes cannot be empty strings")
    if not isinstance(value, (bool, str, int, float, Decimal)):
        raise TypeError(
            f"Only String, Number or Boolean attributes (not {type(value).__name__}) may be defined on keys"
        )
    return encode(value)


def build_key(fields: Mapping[str, Any]) -> dict[str, Any]:
    if not fields:
        raise ValueError("a key needs at least one attribute")
    return {str(name): encode_key_value(value) for name, value in fields.items()}


def build_key_schema(hash_key: str, range_key: str | None = None) -> list[dict[str, str]]:
    if not hash_key:
        raise ValueError("hash_key is required")
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key is not None:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    return key_schema
