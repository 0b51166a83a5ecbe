"""Idempotent provisioning of compiled tables.

Each table moves ``ABSENT -> CREATING -> ACTIVE`` or, when indexes are
missing, ``ACTIVE -> UPDATING -> ACTIVE``. Tables are migrated in parallel;
polling for one table is sequential with a linearly growing, capped delay.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, TypeVar

from botocore.exceptions import ClientError

from .aws_errors import is_resource_not_found, is_table_exists, map_client_error
from .config import EngineConfig
from .errors import NonExistentTableError, TableNotActiveError, migration_required
from .schema import CompiledSchema, TableDefinition, TableDescription, compute_update_delta

T = TypeVar("T")

logger = logging.getLogger(__name__)


def poll_interval_seconds(attempt: int, *, base_seconds: float, max_seconds: float) -> float:
    return min(base_seconds * max(attempt, 1), max_seconds)


def describe_table(client: Any, table_name: str) -> TableDescription | None:
    try:
        resp = client.describe_table(TableName=table_name)
    except ClientError as err:
        if is_resource_not_found(err):
            return None
        raise map_client_error(err) from err
    return TableDescription.from_response(resp)


def wait_for_table_active(
    client: Any,
    table_name: str,
    *,
    base_seconds: float,
    max_seconds: float = 30.0,
    timeout_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> TableDescription:
    deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds
    attempt = 0
    while True:
        current = describe_table(client, table_name)
        if current is not None and current.is_active:
            return current

        attempt += 1
        pending = current.pending_index() if current is not None else None
        logger.debug(
            "waiting for %s: status=%s index=%s attempt=%d",
            table_name,
            current.status if current is not None else "ABSENT",
            f"{pending.name}:{pending.status}" if pending is not None else "-",
            attempt,
        )

        delay = poll_interval_seconds(attempt, base_seconds=base_seconds, max_seconds=max_seconds)
        if deadline is not None and time.monotonic() + delay > deadline:
            raise TableNotActiveError(f"timed out waiting for table ACTIVE: {table_name}")
        sleep(delay)


def wait_for_table_deleted(
    client: Any,
    table_name: str,
    *,
    base_seconds: float,
    max_seconds: float = 30.0,
    timeout_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds
    attempt = 0
    while describe_table(client, table_name) is not None:
        attempt += 1
        delay = poll_interval_seconds(attempt, base_seconds=base_seconds, max_seconds=max_seconds)
        if deadline is not None and time.monotonic() + delay > deadline:
            raise TableNotActiveError(f"timed out waiting for table deletion: {table_name}")
        logger.debug("waiting for %s to be deleted: attempt=%d", table_name, attempt)
        sleep(delay)


def create_table(client: Any, definition: TableDefinition) -> None:
    try:
        client.create_table(**definition.to_create_table_request())
    except ClientError as err:
        if not is_table_exists(err):
            raise map_client_error(err) from err
        logger.warning("table %s already exists; waiting for it to become ACTIVE", definition.table_name)


def split_update_delta(delta: Mapping[str, Any]) -> list[dict[str, Any]]:
    """DynamoDB accepts a single GSI creation per UpdateTable call."""
    updates = []
    for change in delta.get("GlobalSecondaryIndexUpdates") or []:
        single = copy.deepcopy(dict(delta))
        single["GlobalSecondaryIndexUpdates"] = [copy.deepcopy(change)]
        updates.append(single)
    return updates


def migrate_table(
    client: Any,
    definition: TableDefinition,
    *,
    config: EngineConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> TableDescription:
    name = definition.table_name

    def wait(base_seconds: float) -> TableDescription:
        return wait_for_table_active(
            client,
            name,
            base_seconds=base_seconds,
            max_seconds=config.poll_max_seconds,
            timeout_seconds=config.migration_timeout_seconds,
            sleep=sleep,
        )

    current = describe_table(client, name)
    if current is None:
        logger.info("creating table %s", name)
        create_table(client, definition)
        return wait(config.create_poll_base_seconds)

    if not current.is_active:
        current = wait(config.update_poll_base_seconds)

    delta = compute_update_delta(definition, current, default_throughput=config.default_throughput)
    if delta is None:
        logger.debug("table %s is up to date", name)
        return current

    for update in split_update_delta(delta):
        index_name = update["GlobalSecondaryIndexUpdates"][0]["Create"]["IndexName"]
        logger.info("creating index %s on %s", index_name, name)
        try:
            client.update_table(**update)
        except ClientError as err:
            raise map_client_error(err) from err
        current = wait(config.update_poll_base_seconds)
    return current


def delete_table(
    client: Any,
    table_name: str,
    *,
    config: EngineConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    try:
        client.delete_table(TableName=table_name)
    except ClientError as err:
        if is_resource_not_found(err):
            logger.warning("table %s not found; nothing to delete", table_name)
            return
        raise map_client_error(err) from err

    logger.info("deleting table %s", table_name)
    wait_for_table_deleted(
        client,
        table_name,
        base_seconds=config.create_poll_base_seconds,
        max_seconds=config.poll_max_seconds,
        timeout_seconds=config.migration_timeout_seconds,
        sleep=sleep,
    )


def _run_all(
    tables: tuple[TableDefinition, ...],
    task: Callable[[TableDefinition], T],
    *,
    max_workers: int | None,
) -> dict[str, T]:
    if not tables:
        return {}

    pool = ThreadPoolExecutor(max_workers=max_workers or len(tables), thread_name_prefix="dynamodb-migrate")
    results: dict[str, T] = {}
    try:
        futures = {pool.submit(task, table): table for table in tables}
        for fut in as_completed(futures):
            results[futures[fut].table_name] = fut.result()
    except BaseException:
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown()
    return results


def migrate_up(
    compiled: CompiledSchema,
    *,
    client: Any,
    config: EngineConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, TableDescription]:
    tables = compiled.all_tables()
    results = _run_all(
        tables,
        lambda table: migrate_table(client, table, config=config, sleep=sleep),
        max_workers=config.max_workers,
    )
    logger.info("migration complete: %d tables ACTIVE", len(results))
    return results


def migrate_down(
    compiled: CompiledSchema,
    *,
    client: Any,
    config: EngineConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    _run_all(
        compiled.all_tables(),
        lambda table: delete_table(client, table.table_name, config=config, sleep=sleep),
        max_workers=config.max_workers,
    )
    logger.info("all tables for prefix %s deleted", config.table_prefix)


def assert_table_active(client: Any, table_name: str) -> TableDescription:
    current = describe_table(client, table_name)
    if current is None:
        raise migration_required(NonExistentTableError(f"table not found: {table_name}"))
    if current.status != "ACTIVE":
        raise TableNotActiveError(f"table {table_name} is {current.status}")
    pending = current.pending_index()
    if pending is not None:
        raise TableNotActiveError(f"index {pending.name} on {table_name} is {pending.status}")
    return current
