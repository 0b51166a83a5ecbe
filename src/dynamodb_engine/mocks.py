from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError

OPERATIONS = frozenset(
    {
        "batch_get_item",
        "create_table",
        "delete_item",
        "delete_table",
        "describe_table",
        "get_item",
        "put_item",
        "query",
        "update_table",
    }
)


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()

RequestCheck = Mapping[str, Any] | Callable[[Mapping[str, Any]], None]
Responder = Mapping[str, Any] | Callable[[Mapping[str, Any]], Mapping[str, Any]]


def _mismatches(expected: Any, actual: Any, path: str) -> Iterator[str]:
    """Yield every difference between a partial expectation and a request."""
    if expected is ANY:
        return
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            yield f"{path}: expected dict, got {type(actual).__name__}"
            return
        for key, sub in expected.items():
            if key in actual:
                yield from _mismatches(sub, actual[key], f"{path}.{key}")
            else:
                yield f"{path}: missing key {key!r}"
        return
    if isinstance(expected, list):
        if not isinstance(actual, list):
            yield f"{path}: expected list, got {type(actual).__name__}"
        elif len(expected) != len(actual):
            yield f"{path}: expected {len(expected)} items, got {len(actual)}"
        else:
            for i, pair in enumerate(zip(expected, actual, strict=True)):
                yield from _mismatches(*pair, f"{path}[{i}]")
        return
    if expected != actual:
        yield f"{path}: expected {expected!r}, got {actual!r}"


def client_error(code: str, message: str = "", *, operation: str = "DynamoDB") -> ClientError:
    """Build the ``ClientError`` botocore raises for a DynamoDB fault code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@dataclass(frozen=True)
class ExpectedCall:
    operation: str
    request: RequestCheck | None = None
    response: Responder | None = None
    error: Exception | None = None

    def check(self, req: Mapping[str, Any]) -> None:
        if callable(self.request):
            self.request(req)
        elif self.request is not None:
            problems = list(_mismatches(self.request, req, self.operation))
            if problems:
                raise AssertionError("; ".join(problems))

    def respond(self, req: Mapping[str, Any]) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return dict(self.response(req))
        return dict(self.response or {})


class FakeDynamoDBClient:
    """Scripted stand-in for ``boto3.client("dynamodb")``.

    Each call consumes the next expectation, which must name the same
    operation. An expectation may check the request (partial match with
    ``ANY`` wildcards, or a callable) and then return ``response`` (a mapping,
    or a callable of the request) or raise ``error``. Safe to share across the
    migration thread pool.
    """

    def __init__(self) -> None:
        self._pending: list[ExpectedCall] = []
        self._lock = threading.Lock()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        operation: str,
        request: RequestCheck | None = None,
        *,
        response: Responder | None = None,
        error: Exception | None = None,
    ) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"unsupported operation: {operation}")
        self._pending.append(ExpectedCall(operation, request, response, error))

    def assert_no_pending(self) -> None:
        if self._pending:
            names = ", ".join(call.operation for call in self._pending)
            raise AssertionError(f"pending expected calls: {names}")

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == operation]

    def __getattr__(self, name: str) -> Callable[..., dict[str, Any]]:
        if name not in OPERATIONS:
            raise AttributeError(name)

        def call(**kwargs: Any) -> dict[str, Any]:
            return self._dispatch(name, kwargs)

        return call

    def _dispatch(self, operation: str, req: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self.calls.append((operation, dict(req)))
            if not self._pending:
                raise AssertionError(f"unexpected call: {operation}")
            call = self._pending.pop(0)

        if call.operation != operation:
            raise AssertionError(f"expected {call.operation}, got {operation}")
        call.check(req)
        return call.respond(req)
