from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sharpcrm.metrics import observe_store_query
from sharpcrm.persistence.models import AttributeItem
from sharpcrm.persistence.store import StoreError, TableSchema
from sharpcrm.platform.security.predicates import Eq, Predicate, and_
from sharpcrm.platform.security.renderers import SqlAlchemyRenderer


logger = logging.getLogger("sharpcrm.store")


class SqlAlchemyAttributeStore:
    """Attribute store over a single ``attribute_items`` table with JSON attributes."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], schemas: list[TableSchema] | None = None) -> None:
        self._session_factory = session_factory
        self._schemas: dict[str, TableSchema] = {}
        self._renderer = SqlAlchemyRenderer(AttributeItem.attributes)
        for schema in schemas or []:
            self.register_table(schema)

    def register_table(self, schema: TableSchema) -> None:
        self._schemas[schema.name] = schema

    async def get_item(self, table: str, key: str) -> dict[str, Any] | None:
        self._schema("get", table)
        stmt = select(AttributeItem.attributes).where(
            AttributeItem.table_name == table,
            AttributeItem.item_key == str(key),
        )
        rows = await self._fetch("get", table, stmt)
        return dict(rows[0]) if rows else None

    async def query(
        self,
        table: str,
        index_name: str,
        key_value: Any,
        *,
        filter: Predicate | None = None,
    ) -> list[dict[str, Any]]:
        attribute = self._schema("query", table).index_attribute(index_name)
        condition = and_(Eq(attribute, key_value), filter)
        stmt = select(AttributeItem.attributes).where(
            AttributeItem.table_name == table,
            self._renderer.render(condition),
        )
        return [dict(row) for row in await self._fetch("query", table, stmt)]

    async def scan(self, table: str, *, filter: Predicate | None = None) -> list[dict[str, Any]]:
        self._schema("scan", table)
        stmt = select(AttributeItem.attributes).where(AttributeItem.table_name == table)
        if filter is not None:
            stmt = stmt.where(self._renderer.render(filter))
        return [dict(row) for row in await self._fetch("scan", table, stmt)]

    async def put_item(self, table: str, item: dict[str, Any]) -> None:
        schema = self._schema("put", table)
        key = item.get(schema.key_attribute)
        if key is None:
            raise StoreError("put", table, f"item is missing key attribute '{schema.key_attribute}'")

        try:
            async with self._session_factory() as session:
                existing = await session.scalar(
                    select(AttributeItem).where(
                        AttributeItem.table_name == table,
                        AttributeItem.item_key == str(key),
                    )
                )
                if existing is None:
                    session.add(AttributeItem(table_name=table, item_key=str(key), attributes=dict(item)))
                else:
                    existing.attributes = dict(item)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError("put", table, str(exc)[:500]) from exc

    async def delete_item(self, table: str, key: str) -> None:
        self._schema("delete", table)
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(AttributeItem).where(
                        AttributeItem.table_name == table,
                        AttributeItem.item_key == str(key),
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError("delete", table, str(exc)[:500]) from exc

    async def _fetch(self, operation: str, table: str, stmt: Any) -> list[dict[str, Any]]:
        observe_store_query(table=table, operation=operation)
        try:
            async with self._session_factory() as session:
                return list((await session.scalars(stmt)).all())
        except SQLAlchemyError as exc:
            logger.error("store.query_failed", extra={"operation": operation, "resource": table, "error": str(exc)})
            raise StoreError(operation, table, str(exc)[:500]) from exc

    def _schema(self, operation: str, table: str) -> TableSchema:
        schema = self._schemas.get(table)
        if schema is None:
            raise StoreError(operation, table, "table is not registered")
        return schema
