from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .mocks import ANY, FakeDynamoDBClient, client_error
from .schema import TableDefinition


def no_sleep(_: float) -> None:
    return None


def table_response(
    definition: TableDefinition,
    *,
    status: str = "ACTIVE",
    index_statuses: Mapping[str, str] | None = None,
    indexes: Sequence[str] | None = None,
) -> dict[str, Any]:
    """Render a ``describe_table`` response for a compiled table definition.

    ``indexes`` restricts which of the definition's indexes exist live;
    ``index_statuses`` overrides the per-index status (default ``ACTIVE``).
    """
    statuses = dict(index_statuses or {})
    live = [
        idx
        for idx in definition.global_secondary_indexes
        if indexes is None or idx.name in indexes
    ]
    used = {definition.hash_key, definition.range_key}
    for idx in live:
        used.update({idx.hash_key, idx.range_key})

    table: dict[str, Any] = {
        "TableName": definition.table_name,
        "TableStatus": status,
        "KeySchema": definition.key_schema(),
        "AttributeDefinitions": [
            attr.to_request() for attr in definition.attribute_definitions if attr.name in used
        ],
        "BillingModeSummary": {"BillingMode": definition.billing_mode},
    }
    if live:
        table["GlobalSecondaryIndexes"] = [
            {
                "IndexName": idx.name,
                "KeySchema": idx.key_schema(),
                "Projection": idx.projection.to_request(),
                "IndexStatus": statuses.get(idx.name, "ACTIVE"),
            }
            for idx in live
        ]
    return {"Table": table}


def not_found(operation: str = "DescribeTable") -> Exception:
    return client_error("ResourceNotFoundException", "Requested resource not found", operation=operation)


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "client_error",
    "no_sleep",
    "not_found",
    "table_response",
]
