from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from dynamodb_engine.config import EngineConfig
from dynamodb_engine.engine import DynamoDBEngine
from dynamodb_engine.errors import ConflictError, NotFoundError, RecordExistsError, ValidationError
from dynamodb_engine.testkit import no_sleep

RECORD = {
    "id": "c-1",
    "type": "Character",
    "name": "Ayla",
    "guild": "red",
    "level": 12,
    "active": True,
    "stats": {"hp": 30, "mp": 2.5},
    "tags": ["mage", "elf"],
}


def test_create_then_get(engine: DynamoDBEngine) -> None:
    assert engine.create_record(RECORD) == RECORD
    assert engine.get_record("Character", "c-1") == RECORD


def test_decimal_fields_come_back_exactly(engine: DynamoDBEngine) -> None:
    record = {**RECORD, "price": Decimal("0.1"), "balance": Decimal("12345678901234567890.5")}
    engine.create_record(record)
    fetched = engine.get_record("Character", "c-1")
    assert fetched == record
    assert fetched["price"] == Decimal("0.1")
    assert fetched["balance"] == Decimal("12345678901234567890.5")
    assert fetched["stats"]["mp"] == Decimal("2.5")


def test_duplicate_create_is_rejected_and_keeps_first_write(engine: DynamoDBEngine) -> None:
    engine.create_record(RECORD)

    with pytest.raises(RecordExistsError) as exc:
        engine.create_record({**RECORD, "name": "Impostor"})

    assert isinstance(exc.value, ConflictError)
    assert exc.value.code == "DYNAMODB_RECORD_EXISTS"
    assert engine.get_record("Character", "c-1")["name"] == "Ayla"


def test_update_record_is_a_full_overwrite(engine: DynamoDBEngine) -> None:
    engine.create_record(RECORD)
    engine.update_record({"id": "c-1", "type": "Character", "name": "Ayla II"})
    assert engine.get_record("Character", "c-1") == {"id": "c-1", "type": "Character", "name": "Ayla II"}


def test_update_record_upserts(engine: DynamoDBEngine) -> None:
    engine.update_record({"id": "w-1", "type": "Weapon", "damage": 7})
    assert engine.get_record("Weapon", "w-1")["damage"] == 7


def test_remove_then_get_is_not_found(engine: DynamoDBEngine) -> None:
    engine.create_record(RECORD)
    engine.remove_record("Character", "c-1")

    with pytest.raises(NotFoundError, match="Could not find record"):
        engine.get_record("Character", "c-1")

    engine.remove_record("Character", "c-1")


@pytest.mark.parametrize(
    "record",
    [
        {"type": "Character"},
        {"id": "", "type": "Character"},
        {"id": 5, "type": "Character"},
        {"id": "x"},
        {"id": "x", "type": ""},
        {"id": "x", "type": "Dragon"},
        {"id": "x", "type": "Character", "bad": float("nan")},
        {"id": "x", "type": "Character", "note": ""},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_records_are_rejected_before_io(record: Any, moto_client: Any, config: EngineConfig) -> None:
    engine = DynamoDBEngine({"Character": {}}, config=config, client=moto_client, sleep=no_sleep)
    with pytest.raises(ValidationError):
        engine.create_record(record)
    assert moto_client.counts["put_item"] == 0


def test_empty_strings_become_null_when_not_strict(moto_client: Any) -> None:
    config = EngineConfig(table_prefix="lenient", region="us-east-1", strict_strings=False)
    engine = DynamoDBEngine({"Note": {}}, config=config, client=moto_client, sleep=no_sleep)
    engine.migrate_up()

    engine.create_record({"id": "n-1", "type": "Note", "body": ""})

    assert engine.get_record("Note", "n-1") == {"id": "n-1", "type": "Note", "body": None}


def test_get_record_validates_arguments(engine: DynamoDBEngine) -> None:
    with pytest.raises(ValidationError, match="unknown record type"):
        engine.get_record("Dragon", "x")
    with pytest.raises(ValidationError, match="id must be"):
        engine.get_record("Character", "")


def test_table_names(engine: DynamoDBEngine) -> None:
    assert engine.table_name("Character") == "ddb_engine_tests_character_entities"
    assert engine.relation_table_name() == "ddb_engine_tests_relations"
