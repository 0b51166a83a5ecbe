from __future__ import annotations

import base64
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .codec import decode_item, encode
from .errors import NonExistentIndexError, NonExistentTableError, ValidationError, migration_required
from .keys import encode_key_value

RANGE_OPERATORS = ("=", "<", "<=", ">", ">=", "between", "begins_with")


@dataclass(frozen=True)
class Page:
    items: list[dict[str, Any]]
    count: int
    last_evaluated_key: dict[str, Any] | None = None
    next_cursor: str | None = None


@dataclass(frozen=True)
class Cursor:
    last_key: dict[str, Any]
    index: str | None = None
    sort: str | None = None


@dataclass(frozen=True)
class Query:
    """Immutable key-condition query; every chained call returns a new instance."""

    client: Any = field(repr=False, compare=False)
    table_name: str
    hash_key: str
    index_name: str | None = None
    range_key: str | None = None
    hash_value: Any = None
    range_expression: str | None = None
    range_value: Any = None
    range_value2: Any = None
    scan_forward: bool = True
    limit: int = 20

    def __post_init__(self) -> None:
        if not self.table_name:
            raise ValidationError("table_name is required")
        if not self.hash_key:
            raise ValidationError("hash_key is required")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0:
            raise ValidationError("limit must be a positive integer")
        if self.range_expression is not None and self.range_expression not in RANGE_OPERATORS:
            raise ValidationError(f"unsupported range expression: {self.range_expression}")

    def hash_equal(self, value: Any) -> Query:
        return replace(self, hash_value=value)

    def range_equal(self, value: Any) -> Query:
        return self._range("=", value)

    def range_less_than(self, value: Any) -> Query:
        return self._range("<", value)

    def range_less_than_or_equal(self, value: Any) -> Query:
        return self._range("<=", value)

    def range_greater_than(self, value: Any) -> Query:
        return self._range(">", value)

    def range_greater_than_or_equal(self, value: Any) -> Query:
        return self._range(">=", value)

    def range_between(self, low: Any, high: Any) -> Query:
        return self._range("between", low, high)

    def range_begins_with(self, prefix: Any) -> Query:
        return self._range("begins_with", prefix)

    def ascending(self) -> Query:
        return replace(self, scan_forward=True)

    def descending(self) -> Query:
        return replace(self, scan_forward=False)

    def set_limit(self, limit: int) -> Query:
        return replace(self, limit=limit)

    def _range(self, op: str, value: Any, value2: Any = None) -> Query:
        if self.range_key is None:
            raise ValidationError(f"{self.index_name or self.table_name} does not define a range key")
        return replace(self, range_expression=op, range_value=value, range_value2=value2)

    @property
    def sort(self) -> str:
        return "ASC" if self.scan_forward else "DESC"

    def build_request(self, exclusive_start_key: Mapping[str, Any] | None = None) -> dict[str, Any]:
        if self.hash_value is None:
            raise ValidationError("hash value is required (call hash_equal)")

        names: dict[str, str] = {"#hashkey": self.hash_key}
        values: dict[str, Any] = {":hashval": _key_value(self.hash_value)}
        key_expr = "#hashkey = :hashval"

        if self.range_expression is not None and self.range_key is not None:
            names["#rangekey"] = self.range_key
            values[":rangeval"] = _key_value(self.range_value)
            if self.range_expression == "between":
                values[":rangeval2"] = _key_value(self.range_value2)
                key_expr += " AND #rangekey BETWEEN :rangeval AND :rangeval2"
            elif self.range_expression == "begins_with":
                key_expr += " AND begins_with(#rangekey, :rangeval)"
            else:
                key_expr += f" AND #rangekey {self.range_expression} :rangeval"

        req: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": key_expr,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ScanIndexForward": self.scan_forward,
            "Limit": self.limit,
        }
        if self.index_name is not None:
            req["IndexName"] = self.index_name
        if exclusive_start_key:
            req["ExclusiveStartKey"] = dict(exclusive_start_key)
        return req

    def fetch_page(self, cursor: str | Mapping[str, Any] | None = None) -> Page:
        req = self.build_request(self._start_key(cursor))
        try:
            resp = self.client.query(**req)
        except ClientError as err:
            mapped = map_client_error(err)
            if isinstance(mapped, (NonExistentTableError, NonExistentIndexError)):
                raise migration_required(mapped) from err
            raise mapped from err

        items = [decode_item(item) for item in resp.get("Items", [])]
        last = resp.get("LastEvaluatedKey") or None
        return Page(
            items=items,
            count=int(resp.get("Count", len(items))),
            last_evaluated_key=last,
            next_cursor=encode_cursor(last, index=self.index_name, sort=self.sort) if last else None,
        )

    def iter_pages(self, cursor: str | Mapping[str, Any] | None = None) -> Iterator[Page]:
        start: str | Mapping[str, Any] | None = cursor
        while True:
            page = self.fetch_page(start)
            yield page
            if page.last_evaluated_key is None:
                return
            start = page.last_evaluated_key

    def fetch_all(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for page in self.iter_pages():
            out.extend(page.items)
        return out

    def _start_key(self, cursor: str | Mapping[str, Any] | None) -> Mapping[str, Any] | None:
        if cursor is None or isinstance(cursor, Mapping):
            return cursor
        try:
            decoded = decode_cursor(cursor)
        except (ValueError, TypeError) as err:
            raise ValidationError("invalid cursor") from err
        if decoded.index != self.index_name:
            raise ValidationError("cursor index does not match query")
        if decoded.sort is not None and decoded.sort != self.sort:
            raise ValidationError("cursor sort does not match query")
        return decoded.last_key


def _key_value(value: Any) -> dict[str, Any]:
    try:
        if isinstance(value, (bytes, bytearray)):
            return encode(value)
        return encode_key_value(value)
    except TypeError as err:
        raise ValidationError(str(err)) from err


def _single(value: Any) -> tuple[str, Any]:
    if not isinstance(value, Mapping) or len(value) != 1:
        raise ValueError("attribute value must be a single-key map")
    (kind, inner), *_ = value.items()
    return str(kind), inner


def _key_av_to_json(av: Any) -> dict[str, Any]:
    kind, value = _single(av)
    if kind in {"S", "N"} and isinstance(value, str):
        return {kind: value}
    if kind == "B" and isinstance(value, (bytes, bytearray)):
        return {"B": base64.b64encode(bytes(value)).decode("ascii")}
    raise ValueError(f"unsupported key attribute value: {kind}")


def _key_av_from_json(enc: Any) -> dict[str, Any]:
    kind, value = _single(enc)
    if kind in {"S", "N"} and isinstance(value, str):
        return {kind: value}
    if kind == "B" and isinstance(value, str):
        return {"B": base64.b64decode(value)}
    raise ValueError(f"unsupported key attribute value: {kind}")


def encode_cursor(last_key: Mapping[str, Any] | None, *, index: str | None = None, sort: str | None = None) -> str:
    """Serialize a ``LastEvaluatedKey`` into an opaque URL-safe token."""
    if not last_key:
        return ""
    if not isinstance(last_key, Mapping):
        raise ValueError("last_key must be a map")

    payload: dict[str, Any] = {"lastKey": {str(k): _key_av_to_json(last_key[k]) for k in sorted(last_key)}}
    if index is not None:
        payload["index"] = index
    if sort is not None:
        payload["sort"] = sort

    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> Cursor:
    raw = str(cursor or "").strip()
    if not raw:
        raise ValueError("cursor is empty")

    padding = "=" * (-len(raw) % 4)
    parsed = json.loads(base64.urlsafe_b64decode(raw + padding).decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("cursor must decode to an object")

    last_key_raw = parsed.get("lastKey")
    if not isinstance(last_key_raw, dict) or not last_key_raw:
        raise ValueError("cursor lastKey is invalid")

    index = parsed.get("index")
    sort = parsed.get("sort")
    return Cursor(
        last_key={str(k): _key_av_from_json(v) for k, v in last_key_raw.items()},
        index=index if isinstance(index, str) else None,
        sort=sort if sort in {"ASC", "DESC"} else None,
    )
