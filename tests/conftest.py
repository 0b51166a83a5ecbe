from __future__ import annotations

import threading
from collections import Counter
from typing import Any

import boto3
import pytest
from moto import mock_aws

from dynamodb_engine.config import EngineConfig
from dynamodb_engine.engine import DynamoDBEngine
from dynamodb_engine.testkit import no_sleep

SCHEMA: dict[str, Any] = {
    "Character": {
        "attributes": {"name": "String", "guild": "String", "level": "Number", "active": "Boolean"},
        "indexes": {
            "ByName": {"keys": {"hash": {"name": "name", "type": "String"}}},
            "ByGuild": {
                "keys": {
                    "hash": {"name": "guild", "type": "String"},
                    "range": {"name": "level", "type": "Number"},
                }
            },
        },
    },
    "Weapon": {
        "attributes": {"damage": "Number"},
        "throughput": {"read": 2, "write": 1},
    },
}


class CountingClient:
    """Passes calls through to a real client and counts them per operation."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self._lock = threading.Lock()
        self.counts: Counter[str] = Counter()

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._inner, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def wrapped(*args: Any, **kwargs: Any) -> Any:
            with self._lock:
                self.counts[name] += 1
            return attr(*args, **kwargs)

        return wrapped


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def schema_spec() -> dict[str, Any]:
    return SCHEMA


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(table_prefix="ddb_engine_tests", region="us-east-1")


@pytest.fixture
def moto_client(aws_credentials: None) -> Any:
    with mock_aws():
        yield CountingClient(boto3.client("dynamodb", region_name="us-east-1"))


@pytest.fixture
def engine(moto_client: Any, config: EngineConfig) -> DynamoDBEngine:
    eng = DynamoDBEngine(SCHEMA, config=config, client=moto_client, sleep=no_sleep)
    eng.migrate_up()
    return eng
