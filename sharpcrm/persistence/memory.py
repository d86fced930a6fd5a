from __future__ import annotations

import copy
import logging
from typing import Any

from sharpcrm.metrics import observe_store_query
from sharpcrm.persistence.store import StoreError, TableSchema
from sharpcrm.platform.security.predicates import Predicate, matches


logger = logging.getLogger("sharpcrm.store")


class InMemoryAttributeStore:
    """Dict-backed attribute store; items are copied on the way in and out."""

    def __init__(self, schemas: list[TableSchema] | None = None) -> None:
        self._schemas: dict[str, TableSchema] = {}
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        for schema in schemas or []:
            self.register_table(schema)

    def register_table(self, schema: TableSchema) -> None:
        self._schemas[schema.name] = schema
        self._tables.setdefault(schema.name, {})

    async def get_item(self, table: str, key: str) -> dict[str, Any] | None:
        rows = self._table("get", table)
        observe_store_query(table=table, operation="get")
        item = rows.get(str(key))
        return copy.deepcopy(item) if item is not None else None

    async def query(
        self,
        table: str,
        index_name: str,
        key_value: Any,
        *,
        filter: Predicate | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._table("query", table)
        attribute = self._schemas[table].index_attribute(index_name)
        observe_store_query(table=table, operation="query")
        return [
            copy.deepcopy(item)
            for item in rows.values()
            if item.get(attribute) == key_value and (filter is None or matches(filter, item))
        ]

    async def scan(self, table: str, *, filter: Predicate | None = None) -> list[dict[str, Any]]:
        rows = self._table("scan", table)
        observe_store_query(table=table, operation="scan")
        return [copy.deepcopy(item) for item in rows.values() if filter is None or matches(filter, item)]

    async def put_item(self, table: str, item: dict[str, Any]) -> None:
        rows = self._table("put", table)
        key_attribute = self._schemas[table].key_attribute
        key = item.get(key_attribute)
        if key is None:
            raise StoreError("put", table, f"item is missing key attribute '{key_attribute}'")
        rows[str(key)] = copy.deepcopy(item)

    async def delete_item(self, table: str, key: str) -> None:
        rows = self._table("delete", table)
        rows.pop(str(key), None)

    def _table(self, operation: str, table: str) -> dict[str, dict[str, Any]]:
        rows = self._tables.get(table)
        if rows is None:
            logger.warning("store.unknown_table", extra={"operation": operation, "resource": table})
            raise StoreError(operation, table, "table is not registered")
        return rows
