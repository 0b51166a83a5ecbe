from __future__ import annotations

import pytest

from dynamodb_engine.engine import DynamoDBEngine
from dynamodb_engine.errors import ConflictError, RecordExistsError, ValidationError

AYLA = {"id": "c-1", "type": "Character"}
BRAM = {"id": "c-2", "type": "Character"}
SWORD = {"id": "w-1", "type": "Weapon"}
BOW = {"id": "w-2", "type": "Weapon"}


def test_relation_symmetry(engine: DynamoDBEngine) -> None:
    engine.create_relation(AYLA, SWORD)

    assert engine.get_relations("c-1", "Weapon") == [{"id": "w-1", "type": "Weapon"}]
    assert engine.get_reverse_relations("w-1", "Character") == [{"id": "c-1", "type": "Character"}]

    engine.remove_relation("c-1", "w-1")

    assert engine.get_relations("c-1", "Weapon") == []
    assert engine.get_reverse_relations("w-1", "Character") == []


def test_relations_filter_by_type(engine: DynamoDBEngine) -> None:
    engine.create_relation(AYLA, SWORD)
    engine.create_relation(AYLA, BOW)
    engine.create_relation(AYLA, BRAM)
    engine.create_relation(BRAM, SWORD)

    weapons = engine.get_relations("c-1", "Weapon")
    assert sorted(r["id"] for r in weapons) == ["w-1", "w-2"]
    assert len(engine.get_relations("c-1")) == 3
    assert engine.get_relations("c-1", "Character") == [{"id": "c-2", "type": "Character"}]
    assert sorted(r["id"] for r in engine.get_reverse_relations("w-1")) == ["c-1", "c-2"]


def test_duplicate_relation_is_a_conflict(engine: DynamoDBEngine) -> None:
    engine.create_relation(AYLA, SWORD)
    with pytest.raises(ConflictError) as exc:
        engine.create_relation(AYLA, SWORD)
    assert not isinstance(exc.value, RecordExistsError)


def test_remove_missing_relation_is_silent(engine: DynamoDBEngine) -> None:
    engine.remove_relation("nobody", "nothing")


@pytest.mark.parametrize(
    ("subject", "obj"),
    [
        ({"id": "c-1"}, SWORD),
        (AYLA, {"id": "", "type": "Weapon"}),
        (AYLA, {"id": "w-1", "type": None}),
        ("c-1", SWORD),
    ],
)
def test_create_relation_validates_endpoints(engine: DynamoDBEngine, subject: object, obj: object) -> None:
    with pytest.raises(ValidationError):
        engine.create_relation(subject, obj)  # type: ignore[arg-type]
