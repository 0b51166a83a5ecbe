from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, cast

from .errors import SchemaError

SCALAR_TYPES = ("String", "Number", "Boolean", "Binary")
STREAM_TYPES = ("KEYS_ONLY", "OLD_IMAGE", "NEW_AND_OLD_IMAGES", "NEW_IMAGE")
PROJECTION_TYPES = ("ALL", "KEYS_ONLY", "INCLUDE")

_KEY_WIRE_TYPES = {"String": "S", "Number": "N", "Binary": "B"}

RECORD_HASH_KEY = "id"


@dataclass(frozen=True)
class Throughput:
    read: int = 10
    write: int = 5

    def __post_init__(self) -> None:
        if isinstance(self.read, bool) or not isinstance(self.read, int) or self.read <= 0:
            raise SchemaError(f"throughput.read must be a positive integer (got {self.read!r})")
        if isinstance(self.write, bool) or not isinstance(self.write, int) or self.write <= 0:
            raise SchemaError(f"throughput.write must be a positive integer (got {self.write!r})")

    @classmethod
    def from_mapping(cls, spec: Mapping[str, Any], *, default: Throughput | None = None) -> Throughput:
        base = default or cls()
        return cls(read=spec.get("read", base.read), write=spec.get("write", base.write))

    def to_request(self) -> dict[str, int]:
        return {"ReadCapacityUnits": self.read, "WriteCapacityUnits": self.write}


@dataclass(frozen=True)
class KeyAttribute:
    name: str
    type: str = "String"

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise SchemaError("key attribute name must be a non-empty string")
        if self.type not in SCALAR_TYPES:
            raise SchemaError(f"unsupported attribute type for {self.name}: {self.type!r}")

    @property
    def wire_type(self) -> str:
        wire = _KEY_WIRE_TYPES.get(self.type)
        if wire is None:
            raise SchemaError(f"key attribute must be String, Number or Binary: {self.name} ({self.type})")
        return wire

    @classmethod
    def from_mapping(cls, spec: Any) -> KeyAttribute:
        if isinstance(spec, str):
            return cls(name=spec)
        if not isinstance(spec, Mapping):
            raise SchemaError(f"key attribute must be a name or a {{name, type}} map (got {spec!r})")
        return cls(name=spec.get("name", ""), type=spec.get("type", "String"))


@dataclass(frozen=True)
class Projection:
    type: str = "ALL"
    fields: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type not in PROJECTION_TYPES:
            raise SchemaError(f"unsupported projection type: {self.type!r}")
        if self.type == "INCLUDE" and not self.fields:
            raise SchemaError("INCLUDE projection requires non_key_attributes")

    @staticmethod
    def all() -> Projection:
        return Projection(type="ALL")

    @staticmethod
    def keys_only() -> Projection:
        return Projection(type="KEYS_ONLY")

    @staticmethod
    def include(*fields: str) -> Projection:
        return Projection(type="INCLUDE", fields=tuple(fields))

    def to_request(self) -> dict[str, Any]:
        proj: dict[str, Any] = {"ProjectionType": self.type}
        if self.type == "INCLUDE":
            proj["NonKeyAttributes"] = list(self.fields)
        return proj


@dataclass(frozen=True)
class IndexSchema:
    name: str
    hash: KeyAttribute
    range: KeyAttribute | None = None
    projection: Projection = field(default_factory=Projection.all)
    throughput: Throughput | None = None

    @classmethod
    def from_mapping(cls, name: str, spec: Mapping[str, Any]) -> IndexSchema:
        if not isinstance(spec, Mapping):
            raise SchemaError(f"index {name}: definition must be a map")
        keys = spec.get("keys")
        if not isinstance(keys, Mapping) or "hash" not in keys:
            raise SchemaError(f"index {name}: keys.hash is required")

        projection_spec = spec.get("projection", "ALL")
        if isinstance(projection_spec, Mapping):
            projection = Projection(
                type=projection_spec.get("type", "ALL"),
                fields=tuple(projection_spec.get("non_key_attributes", ())),
            )
        else:
            projection = Projection(type=str(projection_spec))

        throughput = spec.get("throughput")
        return cls(
            name=name,
            hash=KeyAttribute.from_mapping(keys["hash"]),
            range=KeyAttribute.from_mapping(keys["range"]) if keys.get("range") else None,
            projection=projection,
            throughput=Throughput.from_mapping(throughput) if throughput else None,
        )


@dataclass(frozen=True)
class EntitySchema:
    type: str
    attributes: tuple[tuple[str, str], ...] = ()
    indexes: tuple[IndexSchema, ...] = ()
    throughput: Throughput | None = None
    streams: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type:
            raise SchemaError("entity type must be a non-empty string")
        for name, attr_type in self.attributes:
            if attr_type not in SCALAR_TYPES:
                raise SchemaError(f"{self.type}.{name}: unsupported attribute type {attr_type!r}")
        if self.streams is not None and self.streams not in STREAM_TYPES:
            raise SchemaError(f"{self.type}: streams must be one of {' | '.join(STREAM_TYPES)}")

        seen: set[str] = set()
        for idx in self.indexes:
            if idx.name in seen:
                raise SchemaError(f"{self.type}: duplicate index name: {idx.name}")
            seen.add(idx.name)

    def attribute_type(self, name: str) -> str | None:
        for attr_name, attr_type in self.attributes:
            if attr_name == name:
                return attr_type
        return None

    def index(self, name: str) -> IndexSchema:
        for idx in self.indexes:
            if idx.name == name:
                return idx
        raise SchemaError(f"{self.type}: unknown index: {name}")

    @classmethod
    def from_mapping(cls, type_name: str, spec: Mapping[str, Any] | None) -> EntitySchema:
        spec = spec or {}
        if not isinstance(spec, Mapping):
            raise SchemaError(f"{type_name}: entity definition must be a map")

        keys = spec.get("keys") or {}
        if not isinstance(keys, Mapping):
            raise SchemaError(f"{type_name}: keys must be a map")
        hash_key = keys.get("hash", RECORD_HASH_KEY)
        if isinstance(hash_key, Mapping):
            hash_key = hash_key.get("name")
        if hash_key != RECORD_HASH_KEY:
            raise SchemaError(f"{type_name}: records are keyed by {RECORD_HASH_KEY!r} (got {hash_key!r})")
        if keys.get("range"):
            raise SchemaError(f"{type_name}: entity tables do not support a range key")

        attributes = spec.get("attributes") or {}
        if not isinstance(attributes, Mapping):
            raise SchemaError(f"{type_name}: attributes must be a map")

        indexes = spec.get("indexes") or {}
        if not isinstance(indexes, Mapping):
            raise SchemaError(f"{type_name}: indexes must be a map of index name to definition")

        throughput = spec.get("throughput")
        streams = spec.get("streams")
        return cls(
            type=type_name,
            attributes=tuple((str(k), str(v)) for k, v in attributes.items()),
            indexes=tuple(IndexSchema.from_mapping(str(name), idx) for name, idx in indexes.items()),
            throughput=Throughput.from_mapping(throughput) if throughput else None,
            streams=cast(str | None, streams),
        )


def parse_schema(schema: Mapping[str, Any] | Sequence[EntitySchema]) -> tuple[EntitySchema, ...]:
    if isinstance(schema, Mapping):
        entities = tuple(EntitySchema.from_mapping(str(name), spec) for name, spec in schema.items())
    else:
        entities = tuple(schema)
        for entity in entities:
            if not isinstance(entity, EntitySchema):
                raise SchemaError(f"expected EntitySchema, got {type(entity).__name__}")

    if not entities:
        raise SchemaError("schema must declare at least one entity type")

    seen: set[str] = set()
    for entity in entities:
        if entity.type in seen:
            raise SchemaError(f"duplicate entity type: {entity.type}")
        seen.add(entity.type)
    return entities
