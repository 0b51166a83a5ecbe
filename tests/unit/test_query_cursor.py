from __future__ import annotations

import base64
import json

import pytest

from dynamodb_engine.query import decode_cursor, encode_cursor


def _token(payload: object) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def test_cursor_round_trip_with_key_types() -> None:
    key = {"id": {"S": "A"}, "level": {"N": "3"}, "blob": {"B": b"hi"}}
    decoded = decode_cursor(encode_cursor(key, index="app_character_by_guild", sort="DESC"))
    assert decoded.last_key == key
    assert decoded.index == "app_character_by_guild"
    assert decoded.sort == "DESC"


def test_cursor_is_url_safe_and_deterministic() -> None:
    a = encode_cursor({"b": {"S": "?>"}, "a": {"S": "~~"}})
    b = encode_cursor({"a": {"S": "~~"}, "b": {"S": "?>"}})
    assert a == b
    assert "+" not in a and "/" not in a


def test_encode_cursor_empty_returns_empty_string() -> None:
    assert encode_cursor({}) == ""
    assert encode_cursor(None) == ""


def test_decode_cursor_empty_raises() -> None:
    with pytest.raises(ValueError, match="cursor is empty"):
        decode_cursor("")


def test_decode_cursor_invalid_json_raises() -> None:
    with pytest.raises(ValueError):
        decode_cursor("bm90LWpzb24")  # base64url("not-json")


@pytest.mark.parametrize("av", [{"S": 1}, {"B": "not-bytes"}, {"BOOL": True}, {"M": {}}, {"S": "x", "N": "1"}, "x"])
def test_encode_cursor_rejects_non_key_values(av: object) -> None:
    with pytest.raises(ValueError):
        encode_cursor({"id": av})


def test_decode_cursor_rejects_bad_shapes() -> None:
    with pytest.raises(ValueError, match="must decode to an object"):
        decode_cursor(_token(["nope"]))
    with pytest.raises(ValueError, match="lastKey is invalid"):
        decode_cursor(_token({"lastKey": 1}))
    with pytest.raises(ValueError, match="unsupported key attribute value"):
        decode_cursor(_token({"lastKey": {"id": {"L": []}}}))


def test_decode_cursor_ignores_malformed_index_and_sort() -> None:
    decoded = decode_cursor(_token({"lastKey": {"id": {"S": "A"}}, "index": 1, "sort": "SIDEWAYS"}))
    assert decoded.last_key == {"id": {"S": "A"}}
    assert decoded.index is None
    assert decoded.sort is None
