"""Conversion between native Python values and DynamoDB attribute values.

Wire conversion is boto3's ``TypeSerializer``/``TypeDeserializer``. On top of
it this module applies the engine's rules: floats are accepted (as exact
``Decimal`` text), ``NaN``/infinities and numbers beyond DynamoDB's 38 digits
raise ``TypeError``, an empty string is an error (strict) or NULL, and an
unrecognized tag decodes to ``MISSING``.

Numbers decode to ``int`` for integer literals and to ``Decimal`` otherwise,
so ``decode(encode(x)) == x`` holds for every accepted number.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer

_INTEGER = re.compile(r"^-?\d+$")
_SCALAR_TAGS = frozenset({"S", "N", "B", "BOOL", "NULL", "SS", "NS", "BS"})

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


class _MissingSentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "MISSING"


MISSING: Any = _MissingSentinel()


def _number(value: int | float | Decimal) -> int | Decimal:
    if isinstance(value, int):
        return value
    number = Decimal(repr(value)) if isinstance(value, float) else value
    if not number.is_finite():
        raise TypeError(f"cannot encode non-finite number: {value!r}")
    return number


def _prepare(value: Any, strict: bool) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value == "":
            if strict:
                raise TypeError("cannot encode an empty string")
            return None
        return value
    if isinstance(value, (int, float, Decimal)):
        return _number(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, (set, frozenset)):
        if not value:
            raise TypeError("cannot encode an empty set")
        if "" in value:
            raise TypeError("cannot encode an empty string in a set")
        return {_number(v) if isinstance(v, float) else v for v in value}
    if isinstance(value, (list, tuple)):
        return [_prepare(v, strict) for v in value]
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError(f"map keys must be strings (got {type(k).__name__})")
            out[k] = _prepare(v, strict)
        return out
    raise TypeError(f"cannot encode value of type {type(value).__name__}")


def encode(value: Any, *, strict: bool = True) -> dict[str, Any]:
    prepared = _prepare(value, strict)
    try:
        return _serializer.serialize(prepared)
    except ArithmeticError as err:
        # Inexact/Rounded from boto3's 38-digit decimal context
        raise TypeError(f"number cannot be stored without loss: {value!r}") from err


def decode_number(text: str) -> int | Decimal:
    if _INTEGER.match(text):
        return int(text)
    return _deserializer.deserialize({"N": text})


def decode(av: Any) -> Any:
    """Decode one attribute value; an unrecognized tag yields ``MISSING``."""
    if not isinstance(av, Mapping) or len(av) != 1:
        return MISSING
    (kind, value), *_ = av.items()

    if kind == "L":
        out_list: list[Any] = []
        for elem in value:
            decoded = decode(elem)
            out_list.append(None if decoded is MISSING else decoded)
        return out_list
    if kind == "M":
        return decode_item(value)
    if kind not in _SCALAR_TAGS:
        return MISSING

    if kind == "N":
        return decode_number(str(value))
    if kind == "NS":
        return {decode_number(str(v)) for v in value}

    decoded = _deserializer.deserialize({kind: value})
    if isinstance(decoded, Binary):
        return decoded.value
    if kind == "BS":
        return {b.value if isinstance(b, Binary) else bytes(b) for b in decoded}
    return decoded


def encode_item(record: Mapping[str, Any], *, strict: bool = True) -> dict[str, Any]:
    if not isinstance(record, Mapping):
        raise TypeError("item must be a mapping")
    out: dict[str, Any] = {}
    for name, value in record.items():
        if not isinstance(name, str):
            raise TypeError(f"attribute names must be strings (got {type(name).__name__})")
        out[name] = encode(value, strict=strict)
    return out


def decode_item(item: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, av in item.items():
        value = decode(av)
        if value is MISSING:
            continue
        out[str(name)] = value
    return out
