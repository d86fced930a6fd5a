from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from sharpcrm.platform.security.errors import StoreError
from sharpcrm.platform.security.predicates import Predicate

__all__ = ["AttributeStore", "StoreError", "TableSchema"]


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Key layout of one table: a hash key plus named single-attribute secondary indexes."""

    name: str
    key_attribute: str = "id"
    indexes: dict[str, str] = field(default_factory=dict)

    def index_attribute(self, index_name: str) -> str:
        try:
            return self.indexes[index_name]
        except KeyError:
            raise StoreError("query", self.name, f"unknown index '{index_name}'") from None


class AttributeStore(Protocol):
    """Key/attribute store interface consumed by the access engine."""

    def register_table(self, schema: TableSchema) -> None:
        ...

    async def get_item(self, table: str, key: str) -> dict[str, Any] | None:
        ...

    async def query(
        self,
        table: str,
        index_name: str,
        key_value: Any,
        *,
        filter: Predicate | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def scan(self, table: str, *, filter: Predicate | None = None) -> list[dict[str, Any]]:
        ...

    async def put_item(self, table: str, item: dict[str, Any]) -> None:
        ...

    async def delete_item(self, table: str, key: str) -> None:
        ...
