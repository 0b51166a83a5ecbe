from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, cast

import boto3
from botocore.config import Config

from .errors import SchemaError, ValidationError
from .model import Throughput
from .naming import TableNaming

BILLING_MODES = ("PROVISIONED", "PAY_PER_REQUEST")


@dataclass(frozen=True)
class EngineConfig:
    table_prefix: str
    region: str | None = None
    endpoint_url: str | None = None
    default_throughput: Throughput = field(default_factory=Throughput)
    billing_mode: str = "PROVISIONED"
    create_poll_base_seconds: float = 0.05
    update_poll_base_seconds: float = 0.5
    poll_max_seconds: float = 30.0
    migration_timeout_seconds: float | None = None
    throughput_retry_delay_seconds: float = 0.5
    batch_max_retries: int = 5
    strict_strings: bool = True
    max_workers: int | None = None
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if not isinstance(self.table_prefix, str) or not self.table_prefix.strip():
            raise ValidationError("table_prefix is required")
        if self.billing_mode not in BILLING_MODES:
            raise ValidationError(f"unsupported billing_mode: {self.billing_mode}")
        for name in ("create_poll_base_seconds", "update_poll_base_seconds", "poll_max_seconds"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be > 0")
        if self.migration_timeout_seconds is not None and self.migration_timeout_seconds <= 0:
            raise ValidationError("migration_timeout_seconds must be > 0")
        if self.throughput_retry_delay_seconds < 0:
            raise ValidationError("throughput_retry_delay_seconds must be >= 0")
        if self.batch_max_retries < 0:
            raise ValidationError("batch_max_retries must be >= 0")
        if self.max_workers is not None and self.max_workers <= 0:
            raise ValidationError("max_workers must be > 0")

    @property
    def naming(self) -> TableNaming:
        try:
            return TableNaming(self.table_prefix)
        except SchemaError as err:
            raise ValidationError(err.message) from err

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ, **overrides: Any) -> EngineConfig:
        prefix = (environ.get("TABLE_PREFIX") or "").strip()
        values: dict[str, Any] = {
            "table_prefix": prefix,
            "region": (environ.get("AWS_REGION") or "").strip() or None,
            "endpoint_url": (environ.get("DYNAMODB_ENDPOINT") or "").strip() or None,
        }

        billing = (environ.get("DYNAMODB_BILLING_MODE") or "").strip().upper()
        if billing:
            values["billing_mode"] = billing

        timeout = (environ.get("DYNAMODB_MIGRATION_TIMEOUT") or "").strip()
        if timeout:
            values["migration_timeout_seconds"] = _env_float("DYNAMODB_MIGRATION_TIMEOUT", timeout)

        read = (environ.get("DYNAMODB_READ_CAPACITY") or "").strip()
        write = (environ.get("DYNAMODB_WRITE_CAPACITY") or "").strip()
        if read or write:
            base = Throughput()
            try:
                values["default_throughput"] = Throughput(
                    read=_env_int("DYNAMODB_READ_CAPACITY", read) if read else base.read,
                    write=_env_int("DYNAMODB_WRITE_CAPACITY", write) if write else base.write,
                )
            except SchemaError as err:
                raise ValidationError(err.message) from err

        values.update(overrides)
        return cls(**values)


def _env_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as err:
        raise ValidationError(f"{name} must be an integer (got {raw!r})") from err


def _env_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as err:
        raise ValidationError(f"{name} must be a number (got {raw!r})") from err
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite (got {raw!r})")
    return value


def create_boto3_config(config: EngineConfig) -> Config:
    return Config(
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
        retries={"max_attempts": config.max_attempts, "mode": "adaptive"},
    )


def create_dynamodb_client(config: EngineConfig, *, session: Any | None = None) -> Any:
    sess = session or boto3.session.Session(region_name=config.region)
    return cast(Any, sess).client(
        "dynamodb",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        config=create_boto3_config(config),
    )
