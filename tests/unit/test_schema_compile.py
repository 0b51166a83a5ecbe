from __future__ import annotations

import pytest

from dynamodb_engine.errors import SchemaError, ValidationError
from dynamodb_engine.model import EntitySchema, Throughput, parse_schema
from dynamodb_engine.naming import TableNaming
from dynamodb_engine.schema import (
    AttributeDefinition,
    IndexDefinition,
    TableDefinition,
    compile_schema,
    relation_table_definition,
)

NAMING = TableNaming("app")


def _compile(schema: dict, **kwargs: object):
    return compile_schema(parse_schema(schema), naming=NAMING, **kwargs)  # type: ignore[arg-type]


def test_compile_entity_table_shape(schema_spec: dict) -> None:
    compiled = _compile(schema_spec)
    table = compiled.table_for("Character")

    assert table.to_create_table_request() == {
        "TableName": "app_character_entities",
        "AttributeDefinitions": [
            {"AttributeName": "guild", "AttributeType": "S"},
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "level", "AttributeType": "N"},
            {"AttributeName": "name", "AttributeType": "S"},
        ],
        "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
        "BillingMode": "PROVISIONED",
        "ProvisionedThroughput": {"ReadCapacityUnits": 10, "WriteCapacityUnits": 5},
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "app_character_by_name",
                "KeySchema": [{"AttributeName": "name", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
                "ProvisionedThroughput": {"ReadCapacityUnits": 10, "WriteCapacityUnits": 5},
            },
            {
                "IndexName": "app_character_by_guild",
                "KeySchema": [
                    {"AttributeName": "guild", "KeyType": "HASH"},
                    {"AttributeName": "level", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
                "ProvisionedThroughput": {"ReadCapacityUnits": 10, "WriteCapacityUnits": 5},
            },
        ],
    }


def test_compile_implicit_id_and_entity_throughput(schema_spec: dict) -> None:
    table = _compile(schema_spec).table_for("Weapon")
    assert table.attribute_definitions == (AttributeDefinition("id", "S"),)
    assert table.global_secondary_indexes == ()
    assert table.throughput == Throughput(read=2, write=1)


def test_compile_backfills_undeclared_index_keys() -> None:
    table = _compile(
        {"Spell": {"indexes": {"ByCost": {"keys": {"hash": {"name": "school"}, "range": {"name": "cost", "type": "Number"}}}}}}
    ).table_for("Spell")
    assert table.attribute_type("school") == "S"
    assert table.attribute_type("cost") == "N"


def test_compile_appends_relation_table(schema_spec: dict) -> None:
    compiled = _compile(schema_spec)
    assert compiled.relation_table == relation_table_definition(naming=NAMING, throughput=Throughput())
    assert [t.table_name for t in compiled.all_tables()] == [
        "app_character_entities",
        "app_weapon_entities",
        "app_relations",
    ]


def test_relation_table_shape() -> None:
    relation = relation_table_definition(naming=NAMING, throughput=Throughput())
    req = relation.to_create_table_request()
    assert req["KeySchema"] == [
        {"AttributeName": "subjectId", "KeyType": "HASH"},
        {"AttributeName": "objectId", "KeyType": "RANGE"},
    ]
    assert {a["AttributeName"] for a in req["AttributeDefinitions"]} == {
        "subjectId",
        "subjectType",
        "objectId",
        "objectType",
    }
    assert [(g["IndexName"], g["KeySchema"]) for g in req["GlobalSecondaryIndexes"]] == [
        (
            "app_has_many",
            [{"AttributeName": "subjectId", "KeyType": "HASH"}, {"AttributeName": "objectType", "KeyType": "RANGE"}],
        ),
        (
            "app_belongs_to",
            [{"AttributeName": "objectId", "KeyType": "HASH"}, {"AttributeName": "subjectType", "KeyType": "RANGE"}],
        ),
    ]


def test_pay_per_request_omits_throughput(schema_spec: dict) -> None:
    req = _compile(schema_spec, billing_mode="PAY_PER_REQUEST").table_for("Character").to_create_table_request()
    assert req["BillingMode"] == "PAY_PER_REQUEST"
    assert "ProvisionedThroughput" not in req
    assert all("ProvisionedThroughput" not in g for g in req["GlobalSecondaryIndexes"])


def test_streams_and_projection_are_carried() -> None:
    req = _compile(
        {
            "Event": {
                "streams": "NEW_AND_OLD_IMAGES",
                "indexes": {"ByKind": {"keys": {"hash": "kind"}, "projection": "KEYS_ONLY"}},
            }
        }
    ).table_for("Event").to_create_table_request()
    assert req["StreamSpecification"] == {"StreamEnabled": True, "StreamViewType": "NEW_AND_OLD_IMAGES"}
    assert req["GlobalSecondaryIndexes"][0]["Projection"] == {"ProjectionType": "KEYS_ONLY"}


def test_compile_rejects_conflicting_types() -> None:
    with pytest.raises(SchemaError, match="declared String"):
        _compile({"A": {"attributes": {"level": "String"}, "indexes": {"L": {"keys": {"hash": {"name": "level", "type": "Number"}}}}}})
    with pytest.raises(SchemaError, match="conflicting key types"):
        _compile(
            {
                "A": {
                    "indexes": {
                        "X": {"keys": {"hash": {"name": "k", "type": "String"}}},
                        "Y": {"keys": {"hash": {"name": "k", "type": "Number"}}},
                    }
                }
            }
        )


def test_compile_rejects_boolean_keys_and_non_string_id() -> None:
    with pytest.raises(SchemaError, match="String, Number or Binary"):
        _compile({"A": {"attributes": {"on": "Boolean"}, "indexes": {"On": {"keys": {"hash": {"name": "on", "type": "Boolean"}}}}}})
    with pytest.raises(SchemaError, match="must be a String"):
        _compile({"A": {"attributes": {"id": "Number"}}})


def test_compile_rejects_name_collisions() -> None:
    with pytest.raises(SchemaError, match="same table"):
        compile_schema([EntitySchema("Character"), EntitySchema("character")], naming=NAMING)


def test_table_definition_requires_key_attributes() -> None:
    with pytest.raises(SchemaError, match="not in AttributeDefinitions"):
        TableDefinition(table_name="t", attribute_definitions=(), hash_key="id", throughput=Throughput())
    with pytest.raises(SchemaError, match="not in AttributeDefinitions"):
        TableDefinition(
            table_name="t",
            attribute_definitions=(AttributeDefinition("id", "S"),),
            hash_key="id",
            throughput=Throughput(),
            global_secondary_indexes=(IndexDefinition(name="i", hash_key="missing"),),
        )


def test_unknown_entity_type_is_a_validation_error(schema_spec: dict) -> None:
    with pytest.raises(ValidationError, match="unknown record type"):
        _compile(schema_spec).table_for("Dragon")
