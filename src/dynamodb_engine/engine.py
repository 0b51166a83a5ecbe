from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .codec import decode_item, encode_item
from .config import EngineConfig, create_dynamodb_client
from .errors import (
    BatchRetryExceededError,
    ConditionFailedError,
    ConflictError,
    NonExistentIndexError,
    NonExistentTableError,
    NotFoundError,
    RecordExistsError,
    SchemaError,
    ThroughputExceededError,
    ValidationError,
    migration_required,
)
from .keys import build_key
from .migration import assert_table_active, migrate_down, migrate_up
from .model import RECORD_HASH_KEY, EntitySchema, parse_schema
from .query import Query
from .schema import (
    RELATION_OBJECT_ID,
    RELATION_OBJECT_TYPE,
    RELATION_SUBJECT_ID,
    RELATION_SUBJECT_TYPE,
    CompiledSchema,
    TableDescription,
    compile_schema,
)
from .schema_document import parse_schema_document

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)

BATCH_GET_LIMIT = 100


def _backoff_seconds(attempt: int) -> float:
    return min(0.05 * (2.0 ** (attempt - 1)), 1.0)


def _chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _translate(err: ClientError) -> Exception:
    mapped = map_client_error(err)
    if isinstance(mapped, (NonExistentTableError, NonExistentIndexError)):
        return migration_required(mapped)
    return mapped


def _require_id(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{what} must be a non-empty string")
    return value


class DynamoDBEngine:
    """Typed records and relations on top of a compiled DynamoDB schema."""

    def __init__(
        self,
        schema: Mapping[str, Any] | Sequence[EntitySchema],
        *,
        config: EngineConfig | None = None,
        client: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or EngineConfig.from_env()
        self._compiled: CompiledSchema = compile_schema(
            parse_schema(schema),
            naming=self._config.naming,
            default_throughput=self._config.default_throughput,
            billing_mode=self._config.billing_mode,
        )
        self._client: Any = client or create_dynamodb_client(self._config)
        self._sleep = sleep

    @classmethod
    def from_document(
        cls,
        raw: str,
        *,
        config: EngineConfig | None = None,
        client: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> DynamoDBEngine:
        return cls(parse_schema_document(raw), config=config, client=client, sleep=sleep)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def schema(self) -> CompiledSchema:
        return self._compiled

    @property
    def client(self) -> Any:
        return self._client

    def table_name(self, entity_type: str) -> str:
        return self._compiled.table_for(entity_type).table_name

    def relation_table_name(self) -> str:
        return self._compiled.relation_table.table_name

    # migrations

    def migrate_up(self) -> dict[str, TableDescription]:
        return migrate_up(self._compiled, client=self._client, config=self._config, sleep=self._sleep)

    def migrate_down(self) -> None:
        migrate_down(self._compiled, client=self._client, config=self._config, sleep=self._sleep)

    def assert_ready(self) -> None:
        for table in self._compiled.all_tables():
            assert_table_active(self._client, table.table_name)

    # records

    def create_record(self, record: Mapping[str, Any]) -> dict[str, Any]:
        table_name, item = self._record_item(record)
        try:
            self._client.put_item(
                TableName=table_name,
                Item=item,
                ConditionExpression="attribute_not_exists(id)",
            )
        except ClientError as err:
            mapped = _translate(err)
            if isinstance(mapped, ConditionFailedError):
                raise RecordExistsError(
                    f"Record {record['type']}:{record['id']} already exists"
                ) from err
            raise mapped from err
        return dict(record)

    def update_record(self, record: Mapping[str, Any]) -> dict[str, Any]:
        table_name, item = self._record_item(record)
        try:
            self._client.put_item(TableName=table_name, Item=item)
        except ClientError as err:
            raise _translate(err) from err
        return dict(record)

    def get_record(self, entity_type: str, record_id: str) -> dict[str, Any]:
        table_name = self._table_for(entity_type)
        key = build_key({RECORD_HASH_KEY: _require_id(record_id, "id")})

        resp = self._retry_throughput(
            "get_item", lambda: self._client.get_item(TableName=table_name, Key=key)
        )
        item = resp.get("Item")
        if not item:
            raise NotFoundError(f"Could not find record {entity_type}:{record_id}")
        return decode_item(item)

    def remove_record(self, entity_type: str, record_id: str) -> None:
        table_name = self._table_for(entity_type)
        key = build_key({RECORD_HASH_KEY: _require_id(record_id, "id")})
        self._retry_throughput(
            "delete_item",
            lambda: self._client.delete_item(TableName=table_name, Key=key, ReturnValues="NONE"),
        )

    def batch_get(self, entity_type: str, ids: Sequence[str]) -> list[dict[str, Any]]:
        return self.batch_get_many({entity_type: ids}).get(entity_type, [])

    def batch_get_many(self, ids_by_type: Mapping[str, Sequence[str]]) -> dict[str, list[dict[str, Any]]]:
        """Fetch records of several types, at most 100 keys per request.

        Missing ids contribute nothing. Results are keyed by entity type.
        """
        requests: list[tuple[str, str]] = []
        type_by_table: dict[str, str] = {}
        for entity_type, ids in ids_by_type.items():
            table_name = self._table_for(entity_type)
            type_by_table[table_name] = entity_type
            if isinstance(ids, str):
                raise ValidationError("ids must be a sequence of strings")
            seen: set[str] = set()
            for record_id in ids:
                _require_id(record_id, "id")
                if record_id not in seen:
                    seen.add(record_id)
                    requests.append((table_name, record_id))

        out: dict[str, list[dict[str, Any]]] = {entity_type: [] for entity_type in ids_by_type}
        for n, chunk in enumerate(_chunked(requests, BATCH_GET_LIMIT), start=1):
            pending: dict[str, Any] = {}
            for table_name, record_id in chunk:
                pending.setdefault(table_name, {"Keys": []})["Keys"].append(
                    build_key({RECORD_HASH_KEY: record_id})
                )
            logger.debug("batch_get chunk %d: %d keys", n, len(chunk))

            attempts = 0
            while pending:
                try:
                    resp = self._client.batch_get_item(RequestItems=pending)
                except ClientError as err:
                    raise _translate(err) from err

                for table_name, items in (resp.get("Responses") or {}).items():
                    entity_type = type_by_table[table_name]
                    out[entity_type].extend(decode_item(item) for item in items)

                pending = resp.get("UnprocessedKeys") or {}
                if pending:
                    unprocessed = sum(len(req.get("Keys") or []) for req in pending.values())
                    if attempts >= self._config.batch_max_retries:
                        raise BatchRetryExceededError(operation="batch_get", unprocessed_count=unprocessed)
                    attempts += 1
                    logger.debug("batch_get retrying %d unprocessed keys (attempt %d)", unprocessed, attempts)
                    self._sleep(_backoff_seconds(attempts))
        return out

    def query(self, entity_type: str, index_name: str | None = None) -> Query:
        table = self._compiled.table_for(entity_type)
        if index_name is None:
            return Query(self._client, table_name=table.table_name, hash_key=RECORD_HASH_KEY)

        entity = self._compiled.entity(entity_type)
        try:
            idx = entity.index(index_name)
        except SchemaError as err:
            raise ValidationError(err.message) from err
        return Query(
            self._client,
            table_name=table.table_name,
            index_name=self._compiled.naming.index(entity_type, idx.name),
            hash_key=idx.hash.name,
            range_key=idx.range.name if idx.range is not None else None,
        )

    # relations

    def create_relation(self, subject: Mapping[str, Any], obj: Mapping[str, Any]) -> None:
        item = {
            RELATION_SUBJECT_ID: _require_id(_field(subject, "id"), "subject.id"),
            RELATION_SUBJECT_TYPE: _require_id(_field(subject, "type"), "subject.type"),
            RELATION_OBJECT_ID: _require_id(_field(obj, "id"), "object.id"),
            RELATION_OBJECT_TYPE: _require_id(_field(obj, "type"), "object.type"),
        }
        try:
            self._client.put_item(
                TableName=self.relation_table_name(),
                Item=encode_item(item),
                ConditionExpression="attribute_not_exists(subjectId) AND attribute_not_exists(objectId)",
            )
        except ClientError as err:
            mapped = _translate(err)
            if isinstance(mapped, ConditionFailedError):
                raise ConflictError(
                    f"Relation {item[RELATION_SUBJECT_ID]} -> {item[RELATION_OBJECT_ID]} already exists"
                ) from err
            raise mapped from err

    def get_relations(self, subject_id: str, object_type: str | None = None) -> list[dict[str, str]]:
        query = Query(
            self._client,
            table_name=self.relation_table_name(),
            index_name=self._compiled.naming.has_many_index(),
            hash_key=RELATION_SUBJECT_ID,
            range_key=RELATION_OBJECT_TYPE,
        ).hash_equal(_require_id(subject_id, "subject_id"))
        if object_type is not None:
            query = query.range_equal(_require_id(object_type, "object_type"))
        return [
            {"id": item[RELATION_OBJECT_ID], "type": item[RELATION_OBJECT_TYPE]} for item in query.fetch_all()
        ]

    def get_reverse_relations(self, object_id: str, subject_type: str | None = None) -> list[dict[str, str]]:
        query = Query(
            self._client,
            table_name=self.relation_table_name(),
            index_name=self._compiled.naming.belongs_to_index(),
            hash_key=RELATION_OBJECT_ID,
            range_key=RELATION_SUBJECT_TYPE,
        ).hash_equal(_require_id(object_id, "object_id"))
        if subject_type is not None:
            query = query.range_equal(_require_id(subject_type, "subject_type"))
        return [
            {"id": item[RELATION_SUBJECT_ID], "type": item[RELATION_SUBJECT_TYPE]} for item in query.fetch_all()
        ]

    def remove_relation(self, subject_id: str, object_id: str) -> None:
        key = build_key(
            {
                RELATION_SUBJECT_ID: _require_id(subject_id, "subject_id"),
                RELATION_OBJECT_ID: _require_id(object_id, "object_id"),
            }
        )
        table_name = self.relation_table_name()
        self._retry_throughput(
            "delete_item",
            lambda: self._client.delete_item(TableName=table_name, Key=key, ReturnValues="NONE"),
        )

    # helpers

    def _table_for(self, entity_type: Any) -> str:
        return self._compiled.table_for(_require_id(entity_type, "type")).table_name

    def _record_item(self, record: Any) -> tuple[str, dict[str, Any]]:
        if not isinstance(record, Mapping):
            raise ValidationError("record must be a mapping")
        _require_id(record.get("id"), "record.id")
        table_name = self._table_for(record.get("type"))
        try:
            item = encode_item(record, strict=self._config.strict_strings)
        except TypeError as err:
            raise ValidationError(f"record {record['type']}:{record['id']}: {err}") from err
        return table_name, item

    def _retry_throughput(self, operation: str, call: Callable[[], R]) -> R:
        attempt = 0
        while True:
            try:
                return call()
            except ClientError as err:
                mapped = _translate(err)
                if not isinstance(mapped, ThroughputExceededError):
                    raise mapped from err
            attempt += 1
            delay = self._config.throughput_retry_delay_seconds
            logger.debug("%s throttled; retry %d in %.2fs", operation, attempt, delay)
            self._sleep(delay)


def _field(value: Any, name: str) -> Any:
    if not isinstance(value, Mapping):
        raise ValidationError("relation endpoints must be mappings with id and type")
    return value.get(name)
