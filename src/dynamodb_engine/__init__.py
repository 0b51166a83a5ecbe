from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .codec import MISSING, decode, decode_item, encode, encode_item
from .errors import (
    BatchRetryExceededError,
    ConditionFailedError,
    ConflictError,
    DynamoDBError,
    NonExistentIndexError,
    NonExistentTableError,
    NotFoundError,
    OperationalError,
    RecordExistsError,
    SchemaError,
    TableExistsError,
    TableNotActiveError,
    ThroughputExceededError,
    ValidationError,
)
from .keys import build_key, build_key_schema
from .model import EntitySchema, IndexSchema, KeyAttribute, Projection, Throughput, parse_schema
from .naming import TableNaming, snake_case
from .query import Page, Query, decode_cursor, encode_cursor

if TYPE_CHECKING:
    from .config import EngineConfig, create_boto3_config, create_dynamodb_client
    from .engine import DynamoDBEngine
    from .migration import (
        assert_table_active,
        migrate_down,
        migrate_table,
        migrate_up,
        wait_for_table_active,
        wait_for_table_deleted,
    )
    from .schema import (
        CompiledSchema,
        IndexDefinition,
        TableDefinition,
        TableDescription,
        compile_schema,
        compute_update_delta,
        relation_table_definition,
    )
    from .schema_document import load_schema_document, load_schema_file, parse_schema_document


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name == "DynamoDBEngine":
        from .engine import DynamoDBEngine

        return DynamoDBEngine
    if name in {"EngineConfig", "create_boto3_config", "create_dynamodb_client"}:
        from . import config

        return getattr(config, name)
    if name in {
        "assert_table_active",
        "migrate_down",
        "migrate_table",
        "migrate_up",
        "wait_for_table_active",
        "wait_for_table_deleted",
    }:
        from . import migration

        return getattr(migration, name)
    if name in {
        "CompiledSchema",
        "IndexDefinition",
        "TableDefinition",
        "TableDescription",
        "compile_schema",
        "compute_update_delta",
        "relation_table_definition",
    }:
        from . import schema

        return getattr(schema, name)
    if name in {"load_schema_document", "load_schema_file", "parse_schema_document"}:
        from . import schema_document

        return getattr(schema_document, name)
    raise AttributeError(name)


__all__ = [
    "assert_table_active",
    "BatchRetryExceededError",
    "build_key",
    "build_key_schema",
    "CompiledSchema",
    "compile_schema",
    "compute_update_delta",
    "ConditionFailedError",
    "ConflictError",
    "create_boto3_config",
    "create_dynamodb_client",
    "decode",
    "decode_cursor",
    "decode_item",
    "DynamoDBEngine",
    "DynamoDBError",
    "encode",
    "encode_cursor",
    "encode_item",
    "EngineConfig",
    "EntitySchema",
    "IndexDefinition",
    "IndexSchema",
    "KeyAttribute",
    "load_schema_document",
    "load_schema_file",
    "migrate_down",
    "migrate_table",
    "migrate_up",
    "MISSING",
    "NonExistentIndexError",
    "NonExistentTableError",
    "NotFoundError",
    "OperationalError",
    "Page",
    "parse_schema",
    "parse_schema_document",
    "Projection",
    "Query",
    "RecordExistsError",
    "relation_table_definition",
    "SchemaError",
    "snake_case",
    "TableDefinition",
    "TableDescription",
    "TableExistsError",
    "TableNaming",
    "TableNotActiveError",
    "ThroughputExceededError",
    "Throughput",
    "ValidationError",
    "wait_for_table_active",
    "wait_for_table_deleted",
    "__repo_version__",
    "__version__",
]
