from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from .errors import SchemaError, ValidationError
from .keys import build_key_schema
from .model import RECORD_HASH_KEY, EntitySchema, KeyAttribute, Projection, Throughput
from .naming import TableNaming

BillingMode = str  # "PROVISIONED" | "PAY_PER_REQUEST"

RELATION_SUBJECT_ID = "subjectId"
RELATION_SUBJECT_TYPE = "subjectType"
RELATION_OBJECT_ID = "objectId"
RELATION_OBJECT_TYPE = "objectType"


@dataclass(frozen=True)
class AttributeDefinition:
    name: str
    type: str

    def to_request(self) -> dict[str, str]:
        return {"AttributeName": self.name, "AttributeType": self.type}


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    hash_key: str
    range_key: str | None = None
    projection: Projection = field(default_factory=Projection.all)
    throughput: Throughput | None = None

    def key_schema(self) -> list[dict[str, str]]:
        return build_key_schema(self.hash_key, self.range_key)

    def to_request(self, *, include_throughput: bool = True) -> dict[str, Any]:
        req: dict[str, Any] = {
            "IndexName": self.name,
            "KeySchema": self.key_schema(),
            "Projection": self.projection.to_request(),
        }
        if include_throughput and self.throughput is not None:
            req["ProvisionedThroughput"] = self.throughput.to_request()
        return req


@dataclass(frozen=True)
class TableDefinition:
    table_name: str
    attribute_definitions: tuple[AttributeDefinition, ...]
    hash_key: str
    range_key: str | None = None
    throughput: Throughput | None = None
    global_secondary_indexes: tuple[IndexDefinition, ...] = ()
    stream_view_type: str | None = None
    billing_mode: BillingMode = "PROVISIONED"

    def __post_init__(self) -> None:
        if self.billing_mode not in {"PROVISIONED", "PAY_PER_REQUEST"}:
            raise SchemaError(f"unsupported billing_mode: {self.billing_mode}")
        if self.billing_mode == "PROVISIONED" and self.throughput is None:
            raise SchemaError(f"{self.table_name}: throughput is required when billing_mode=PROVISIONED")

        defined = {attr.name for attr in self.attribute_definitions}
        if len(defined) != len(self.attribute_definitions):
            raise SchemaError(f"{self.table_name}: duplicate attribute definitions")

        missing = [name for name in (self.hash_key, self.range_key) if name and name not in defined]
        if missing:
            raise SchemaError(
                f"Attributes found in KeySchema not in AttributeDefinitions: {self.table_name} {missing}"
            )
        for idx in self.global_secondary_indexes:
            missing = [name for name in (idx.hash_key, idx.range_key) if name and name not in defined]
            if missing:
                raise SchemaError(
                    "Attributes found in KeySchema not in AttributeDefinitions: "
                    f"{self.table_name}:{idx.name} {missing}"
                )

    def key_schema(self) -> list[dict[str, str]]:
        return build_key_schema(self.hash_key, self.range_key)

    def attribute_type(self, name: str) -> str | None:
        for attr in self.attribute_definitions:
            if attr.name == name:
                return attr.type
        return None

    def index(self, name: str) -> IndexDefinition:
        for idx in self.global_secondary_indexes:
            if idx.name == name:
                return idx
        raise SchemaError(f"{self.table_name}: unknown index: {name}")

    def to_create_table_request(self) -> dict[str, Any]:
        provisioned = self.billing_mode == "PROVISIONED"
        req: dict[str, Any] = {
            "TableName": self.table_name,
            "AttributeDefinitions": [attr.to_request() for attr in self.attribute_definitions],
            "KeySchema": self.key_schema(),
            "BillingMode": self.billing_mode,
        }
        if provisioned and self.throughput is not None:
            req["ProvisionedThroughput"] = self.throughput.to_request()
        if self.global_secondary_indexes:
            req["GlobalSecondaryIndexes"] = [
                idx.to_request(include_throughput=provisioned) for idx in self.global_secondary_indexes
            ]
        if self.stream_view_type is not None:
            req["StreamSpecification"] = {"StreamEnabled": True, "StreamViewType": self.stream_view_type}
        return req


@dataclass(frozen=True)
class IndexDescription:
    name: str
    key_schema: tuple[tuple[str, str], ...]
    status: str


@dataclass(frozen=True)
class TableDescription:
    table_name: str
    status: str
    key_schema: tuple[tuple[str, str], ...]
    attribute_definitions: tuple[AttributeDefinition, ...]
    indexes: tuple[IndexDescription, ...] = ()
    billing_mode: BillingMode = "PROVISIONED"

    @classmethod
    def from_response(cls, resp: Mapping[str, Any]) -> TableDescription:
        table = resp.get("Table", resp)
        if not isinstance(table, Mapping) or not table.get("TableName"):
            raise ValidationError("describe_table response is missing Table")

        indexes = tuple(
            IndexDescription(
                name=str(idx.get("IndexName", "")),
                key_schema=_key_pairs(idx.get("KeySchema") or []),
                status=str(idx.get("IndexStatus", "")),
            )
            for idx in table.get("GlobalSecondaryIndexes") or []
        )
        billing = table.get("BillingModeSummary") or {}
        return cls(
            table_name=str(table["TableName"]),
            status=str(table.get("TableStatus", "")),
            key_schema=_key_pairs(table.get("KeySchema") or []),
            attribute_definitions=tuple(
                AttributeDefinition(name=str(a["AttributeName"]), type=str(a["AttributeType"]))
                for a in table.get("AttributeDefinitions") or []
            ),
            indexes=indexes,
            billing_mode=str(billing.get("BillingMode") or "PROVISIONED"),
        )

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE" and all(idx.status == "ACTIVE" for idx in self.indexes)

    def pending_index(self) -> IndexDescription | None:
        for idx in self.indexes:
            if idx.status != "ACTIVE":
                return idx
        return None

    def index(self, name: str) -> IndexDescription | None:
        for idx in self.indexes:
            if idx.name == name:
                return idx
        return None


def _key_pairs(key_schema: Sequence[Mapping[str, Any]]) -> tuple[tuple[str, str], ...]:
    return tuple((str(k["AttributeName"]), str(k["KeyType"])) for k in key_schema)


def compute_update_delta(
    desired: TableDefinition,
    current: TableDescription,
    *,
    default_throughput: Throughput | None = None,
) -> dict[str, Any] | None:
    """Return the additive UpdateTable request that brings ``current`` up to ``desired``.

    Returns ``None`` when every desired index already exists with the same key
    schema. Existing indexes are never dropped; a changed key schema raises
    ``SchemaError`` because DynamoDB cannot alter keys in place.

    Index throughput follows the live table's billing mode. A provisioned table
    gets each index's own throughput, else ``default_throughput``.
    """
    if _key_pairs(desired.key_schema()) != current.key_schema:
        raise SchemaError(f"Cannot change KeySchema of a table: {desired.table_name}")

    creates: list[IndexDefinition] = []
    for idx in desired.global_secondary_indexes:
        live = current.index(idx.name)
        if live is None:
            creates.append(idx)
            continue
        if _key_pairs(idx.key_schema()) != live.key_schema:
            raise SchemaError(
                f"Cannot change KeySchema of a GlobalSecondaryIndex: {desired.table_name}:{idx.name}"
            )

    if not creates:
        return None

    attr_types = {attr.name: attr.type for attr in current.attribute_definitions}
    for idx in creates:
        for name in (idx.hash_key, idx.range_key):
            if name is None:
                continue
            want = desired.attribute_type(name)
            if want is None:
                raise SchemaError(
                    "Attributes found in KeySchema not in AttributeDefinitions: "
                    f"{desired.table_name}:{idx.name}"
                )
            have = attr_types.get(name)
            if have is not None and have != want:
                raise SchemaError(
                    f"Cannot change AttributeType of {desired.table_name}.{name} ({have} -> {want})"
                )
            attr_types[name] = want

    provisioned = current.billing_mode != "PAY_PER_REQUEST"
    fallback = default_throughput or Throughput()
    return {
        "TableName": current.table_name,
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": attr_types[name]} for name in sorted(attr_types)
        ],
        "GlobalSecondaryIndexUpdates": [{"Create": _index_create(idx, provisioned, fallback)} for idx in creates],
    }


def _index_create(idx: IndexDefinition, provisioned: bool, fallback: Throughput) -> dict[str, Any]:
    if not provisioned:
        return idx.to_request(include_throughput=False)
    if idx.throughput is None:
        idx = replace(idx, throughput=fallback)
    return idx.to_request()


@dataclass(frozen=True)
class CompiledSchema:
    entities: Mapping[str, EntitySchema]
    tables: Mapping[str, TableDefinition]
    relation_table: TableDefinition
    naming: TableNaming

    def entity(self, entity_type: str) -> EntitySchema:
        try:
            return self.entities[entity_type]
        except KeyError:
            raise ValidationError(f"unknown record type: {entity_type}") from None

    def table_for(self, entity_type: str) -> TableDefinition:
        try:
            return self.tables[entity_type]
        except KeyError:
            raise ValidationError(f"unknown record type: {entity_type}") from None

    def all_tables(self) -> tuple[TableDefinition, ...]:
        return (*self.tables.values(), self.relation_table)


def compile_entity(
    entity: EntitySchema,
    *,
    naming: TableNaming,
    default_throughput: Throughput,
    billing_mode: BillingMode = "PROVISIONED",
) -> TableDefinition:
    declared_id = entity.attribute_type(RECORD_HASH_KEY)
    if declared_id not in (None, "String"):
        raise SchemaError(f"{entity.type}.{RECORD_HASH_KEY} must be a String (got {declared_id})")

    provisioned = billing_mode == "PROVISIONED"
    table_throughput = entity.throughput or default_throughput
    attr_types: dict[str, str] = {RECORD_HASH_KEY: "S"}
    indexes: list[IndexDefinition] = []

    for idx in entity.indexes:
        for key in (idx.hash, idx.range):
            if key is None:
                continue
            declared = entity.attribute_type(key.name)
            if declared is not None and declared != key.type:
                raise SchemaError(
                    f"{entity.type}.{key.name}: index {idx.name} declares {key.type} "
                    f"but the attribute is declared {declared}"
                )
            wire = KeyAttribute(name=key.name, type=declared or key.type).wire_type
            existing = attr_types.get(key.name)
            if existing is not None and existing != wire:
                raise SchemaError(f"{entity.type}.{key.name}: conflicting key types {existing} and {wire}")
            attr_types[key.name] = wire

        indexes.append(
            IndexDefinition(
                name=naming.index(entity.type, idx.name),
                hash_key=idx.hash.name,
                range_key=idx.range.name if idx.range is not None else None,
                projection=idx.projection,
                throughput=(idx.throughput or table_throughput) if provisioned else None,
            )
        )

    return TableDefinition(
        table_name=naming.table(entity.type),
        attribute_definitions=tuple(
            AttributeDefinition(name=name, type=attr_types[name]) for name in sorted(attr_types)
        ),
        hash_key=RECORD_HASH_KEY,
        throughput=table_throughput if provisioned else None,
        global_secondary_indexes=tuple(indexes),
        stream_view_type=entity.streams,
        billing_mode=billing_mode,
    )


def relation_table_definition(
    *,
    naming: TableNaming,
    throughput: Throughput,
    billing_mode: BillingMode = "PROVISIONED",
) -> TableDefinition:
    provisioned = billing_mode == "PROVISIONED"
    index_throughput = throughput if provisioned else None
    return TableDefinition(
        table_name=naming.relation_table(),
        attribute_definitions=tuple(
            AttributeDefinition(name=name, type="S")
            for name in sorted(
                (RELATION_SUBJECT_ID, RELATION_SUBJECT_TYPE, RELATION_OBJECT_ID, RELATION_OBJECT_TYPE)
            )
        ),
        hash_key=RELATION_SUBJECT_ID,
        range_key=RELATION_OBJECT_ID,
        throughput=index_throughput,
        global_secondary_indexes=(
            IndexDefinition(
                name=naming.has_many_index(),
                hash_key=RELATION_SUBJECT_ID,
                range_key=RELATION_OBJECT_TYPE,
                throughput=index_throughput,
            ),
            IndexDefinition(
                name=naming.belongs_to_index(),
                hash_key=RELATION_OBJECT_ID,
                range_key=RELATION_SUBJECT_TYPE,
                throughput=index_throughput,
            ),
        ),
        billing_mode=billing_mode,
    )


def compile_schema(
    entities: Sequence[EntitySchema],
    *,
    naming: TableNaming,
    default_throughput: Throughput | None = None,
    billing_mode: BillingMode = "PROVISIONED",
) -> CompiledSchema:
    throughput = default_throughput or Throughput()
    tables: dict[str, TableDefinition] = {}
    seen_names: dict[str, str] = {}

    for entity in entities:
        table = compile_entity(entity, naming=naming, default_throughput=throughput, billing_mode=billing_mode)
        other = seen_names.get(table.table_name)
        if other is not None:
            raise SchemaError(f"entity types {other} and {entity.type} map to the same table {table.table_name}")
        seen_names[table.table_name] = entity.type
        tables[entity.type] = table

    relation = relation_table_definition(naming=naming, throughput=throughput, billing_mode=billing_mode)
    return CompiledSchema(
        entities=MappingProxyType({entity.type: entity for entity in entities}),
        tables=MappingProxyType(tables),
        relation_table=relation,
        naming=naming,
    )
