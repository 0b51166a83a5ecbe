from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import yaml

from .errors import SchemaError, ValidationError
from .model import EntitySchema, parse_schema

SCHEMA_VERSION = "1"


def load_schema_document(raw: str) -> dict[str, Any]:
    """Parse a YAML (or JSON) schema document and return its ``entities`` map.

    The document shape is::

        schema_version: "1"
        entities:
          Character:
            attributes: {name: String}
            indexes:
              ByName: {keys: {hash: {name: name, type: String}}}
    """
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as err:
        raise ValidationError("invalid schema YAML/JSON") from err

    if not isinstance(parsed, dict):
        raise ValidationError("schema document must be a map/object")

    _assert_json_compatible(parsed, path="schema")

    version = parsed.get("schema_version")
    if str(version) != SCHEMA_VERSION:
        raise ValidationError(f"unsupported schema_version: {version!r}")

    entities = parsed.get("entities")
    if not isinstance(entities, dict) or not entities:
        raise ValidationError("schema document must include a non-empty entities map")
    return entities


def load_schema_file(path: str | Path) -> dict[str, Any]:
    return load_schema_document(Path(path).read_text(encoding="utf-8"))


def parse_schema_document(raw: str) -> tuple[EntitySchema, ...]:
    entities = load_schema_document(raw)
    try:
        return parse_schema(entities)
    except SchemaError as err:
        raise ValidationError(f"invalid schema document: {err.message}") from err


def _assert_json_compatible(value: Any, *, path: str) -> None:
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"schema contains non-finite float at {path}")
        return

    if isinstance(value, list):
        for idx, elem in enumerate(value):
            _assert_json_compatible(elem, path=f"{path}[{idx}]")
        return

    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise ValidationError(f"schema contains non-string key at {path}: {k!r}")
            _assert_json_compatible(v, path=f"{path}.{k}")
        return

    raise ValidationError(f"schema contains non-JSON value at {path}: {type(value).__name__}")
