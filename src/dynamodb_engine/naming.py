"""Physical table and index naming.

Every name is ``snake_case(prefix + "_" + ...)`` so that ``Character`` and
``character`` resolve to the same table, and ``ByName`` becomes ``by_name``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import SchemaError

_WORDS = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")
_TABLE_NAME = re.compile(r"^[a-zA-Z0-9_.-]{3,255}$")


def snake_case(value: str) -> str:
    return "_".join(word.lower() for word in _WORDS.findall(value))


@dataclass(frozen=True)
class TableNaming:
    prefix: str

    def __post_init__(self) -> None:
        if not snake_case(self.prefix):
            raise SchemaError(f"table prefix must contain letters or digits (got {self.prefix!r})")

    def table(self, entity_type: str) -> str:
        return self._checked(snake_case(f"{self.prefix}_{entity_type}_entities"))

    def index(self, entity_type: str, index_name: str) -> str:
        return self._checked(snake_case(f"{self.prefix}_{entity_type}_{index_name}"))

    def relation_table(self) -> str:
        return self._checked(snake_case(f"{self.prefix}_relations"))

    def has_many_index(self) -> str:
        return self._checked(snake_case(f"{self.prefix}_has_many"))

    def belongs_to_index(self) -> str:
        return self._checked(snake_case(f"{self.prefix}_belongs_to"))

    def _checked(self, name: str) -> str:
        if not _TABLE_NAME.match(name):
            raise SchemaError(f"invalid table or index name: {name!r}")
        return name
