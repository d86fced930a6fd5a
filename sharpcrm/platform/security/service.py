from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from sharpcrm.otel import access_span
from sharpcrm.platform.security.context import DELETED_ATTRIBUTE, Identity, VisibilityScope
from sharpcrm.platform.security.evaluator import AccessEvaluator
from sharpcrm.platform.security.filters import AccessFilter, build_predicate, tenant_clause
from sharpcrm.platform.security.hierarchy import HierarchyResolver
from sharpcrm.platform.security.policies import ResourceAction
from sharpcrm.platform.security.predicates import Eq, Predicate, and_, not_flagged
from sharpcrm.platform.security.sink import AccessDecisionEvent, AccessDecisionSink, AuditAccessDecisionSink

if TYPE_CHECKING:
    from sharpcrm.persistence.store import AttributeStore


logger = logging.getLogger("sharpcrm.access")

StatsReducer = Callable[[list[dict[str, Any]], datetime], dict[str, Any]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def attribute_equals(stored: Any, wanted: Any) -> bool:
    """Equality that lets a string ``wanted``, as taken from a URL, match numeric and boolean attributes."""

    if stored == wanted:
        return True
    if not isinstance(wanted, str) or stored is None or isinstance(stored, str):
        return False
    if isinstance(stored, bool):
        return wanted.strip().lower() == str(stored).lower()
    if isinstance(stored, (int, float, Decimal)):
        try:
            return Decimal(wanted.strip()) == Decimal(str(stored))
        except InvalidOperation:
            return False
    return False


@dataclass(frozen=True, slots=True)
class ResourceDefinition:
    """Everything that differs between resource types."""

    name: str
    table: str
    owner_attribute: str
    tenant_index: str | None = "TenantIndex"
    owner_index: str | None = None
    lookup_indexes: dict[str, str] = field(default_factory=dict)
    search_fields: tuple[str, ...] = ()
    stats: StatsReducer | None = None


class ResourceAccessService:
    """Visibility-filtered reads for one resource type."""

    def __init__(
        self,
        definition: ResourceDefinition,
        store: AttributeStore,
        resolver: HierarchyResolver,
        *,
        evaluator: AccessEvaluator | None = None,
        sink: AccessDecisionSink | None = None,
    ) -> None:
        self.definition = definition
        self._store = store
        self._resolver = resolver
        self._evaluator = evaluator or AccessEvaluator(resolver)
        self._sink = sink or AuditAccessDecisionSink()

    @property
    def resource(self) -> str:
        return self.definition.name

    @property
    def evaluator(self) -> AccessEvaluator:
        return self._evaluator

    async def list_for_user(self, identity: Identity, include_deleted: bool = False) -> list[dict[str, Any]]:
        with access_span(self.resource, "list", identity):
            if not self._can_view(identity):
                self._emit(identity, "list", granted=False, count=0)
                return []

            scope = await self._evaluator.scope_for(identity)
            records = await self._list_in_scope(scope, include_deleted=include_deleted)
            self._emit(identity, "list", granted=True, count=len(records))
            return records

    async def get_by_id_for_user(self, record_id: str, identity: Identity) -> dict[str, Any] | None:
        """Return the record, or ``None`` when it is absent or not visible to ``identity``."""

        with access_span(self.resource, "get", identity):
            if not self._can_view(identity):
                self._emit(identity, "get", granted=False, resource_id=record_id)
                return None

            record = await self._store.get_item(self.definition.table, record_id)
            if record is None:
                self._emit(identity, "get", granted=False, resource_id=record_id)
                return None

            scope = await self._evaluator.scope_for(identity)
            granted = self._evaluator.can_access(record, scope, self.definition.owner_attribute)
            self._emit(identity, "get", granted=granted, resource_id=record_id)
            return record if granted else None

    async def get_by_owner_for_user(self, owner_id: str, identity: Identity) -> list[dict[str, Any]]:
        with access_span(self.resource, "by_owner", identity):
            scope = await self._evaluator.scope_for(identity)
            if not self._can_view(identity) or not self._evaluator.can_view_owner(owner_id, scope):
                self._emit(identity, "by_owner", granted=False, resource_id=owner_id, count=0)
                return []

            live = and_(tenant_clause(scope.tenant_id), not_flagged(DELETED_ATTRIBUTE))
            if self.definition.owner_index is not None:
                records = await self._store.query(
                    self.definition.table,
                    self.definition.owner_index,
                    owner_id,
                    filter=live,
                )
            else:
                records = await self._fetch(scope.tenant_id, and_(live, Eq(self.definition.owner_attribute, owner_id)))

            self._emit(identity, "by_owner", granted=True, resource_id=owner_id, count=len(records))
            return records

    async def list_by_attribute_for_user(self, attribute: str, value: Any, identity: Identity) -> list[dict[str, Any]]:
        """Records whose ``attribute`` equals ``value`` and that ``identity`` may see.

        Indexed attributes are fetched with one index query and checked record by record
        against a single visibility scope; other attributes filter the bulk list.
        """

        with access_span(self.resource, "by_attribute", identity):
            if not self._can_view(identity):
                self._emit(identity, f"by_{attribute}", granted=False, count=0)
                return []

            scope = await self._evaluator.scope_for(identity)
            index_name = self.definition.lookup_indexes.get(attribute)
            if index_name is None:
                candidates = await self._list_in_scope(scope)
                records = [record for record in candidates if attribute_equals(record.get(attribute), value)]
            else:
                candidates = await self._store.query(
                    self.definition.table,
                    index_name,
                    value,
                    filter=and_(tenant_clause(scope.tenant_id), not_flagged(DELETED_ATTRIBUTE)),
                )
                owner_attribute = self.definition.owner_attribute
                records = [record for record in candidates if self._evaluator.can_access(record, scope, owner_attribute)]

            self._emit(identity, f"by_{attribute}", granted=True, count=len(records))
            return records

    async def get_one_by_attribute_for_user(self, attribute: str, value: Any, identity: Identity) -> dict[str, Any] | None:
        records = await self.list_by_attribute_for_user(attribute, value, identity)
        return records[0] if records else None

    async def search_for_user(self, identity: Identity, term: str) -> list[dict[str, Any]]:
        needle = (term or "").strip().lower()
        if not needle:
            return []

        with access_span(self.resource, "search", identity):
            records = await self.list_for_user(identity, include_deleted=False)
            results = [record for record in records if self._matches_term(record, needle)]
            logger.debug(
                "access.search",
                extra={"resource": self.resource, "user_id": identity.user_id, "count": len(results)},
            )
            return results

    async def stats_for_user(self, identity: Identity) -> dict[str, Any]:
        with access_span(self.resource, "stats", identity):
            records = await self.list_for_user(identity, include_deleted=False)
            if self.definition.stats is None:
                return {"total": len(records)}
            return self.definition.stats(records, utcnow())

    def can_create(self, identity: Identity) -> bool:
        granted = self._evaluator.can_create(self.resource, identity)
        self._emit(identity, "create", granted=granted)
        return granted

    async def get_for_write(self, record_id: str, identity: Identity, action: ResourceAction) -> dict[str, Any] | None:
        """The record if ``identity`` may edit or soft delete it, otherwise ``None``."""

        operation = action.value
        record = await self._store.get_item(self.definition.table, record_id)
        if record is None:
            self._emit(identity, operation, granted=False, resource_id=record_id)
            return None

        scope = await self._evaluator.scope_for(identity)
        granted = self._evaluator.can_modify(record, scope, self.definition.owner_attribute, self.resource, action)
        self._emit(identity, operation, granted=granted, resource_id=record_id)
        return record if granted else None

    async def can_hard_delete(self, record_id: str, identity: Identity) -> bool:
        record = await self._store.get_item(self.definition.table, record_id)
        granted = record is not None and self._evaluator.can_hard_delete(record, identity, self.resource)
        self._emit(identity, "hard_delete", granted=granted, resource_id=record_id)
        return granted

    def build_access_filter(self, scope: VisibilityScope, *, include_deleted: bool = False) -> AccessFilter:
        predicate = build_predicate(scope, self.definition.owner_attribute, include_deleted=include_deleted)
        return AccessFilter.from_predicate(predicate)

    async def _list_in_scope(self, scope: VisibilityScope, *, include_deleted: bool = False) -> list[dict[str, Any]]:
        access_filter = self.build_access_filter(scope, include_deleted=include_deleted)
        logger.debug(
            "access.filter",
            extra={
                "resource": self.resource,
                "user_id": scope.identity.user_id,
                "filter_expression": access_filter.filter_expression,
            },
        )
        return await self._fetch(scope.tenant_id, access_filter.predicate)

    async def _fetch(self, tenant_id: str, predicate: Predicate) -> list[dict[str, Any]]:
        if self.definition.tenant_index is not None:
            return await self._store.query(self.definition.table, self.definition.tenant_index, tenant_id, filter=predicate)
        return await self._store.scan(self.definition.table, filter=predicate)

    def _can_view(self, identity: Identity) -> bool:
        return self._evaluator.is_action_allowed(self.resource, ResourceAction.VIEW, identity)

    def _matches_term(self, record: dict[str, Any], needle: str) -> bool:
        for field_name in self.definition.search_fields:
            value = record.get(field_name)
            if value is None or isinstance(value, bool):
                continue
            if isinstance(value, (int, float, Decimal)):
                value = str(value)
            if isinstance(value, str) and needle in value.lower():
                return True
        return False

    def _emit(
        self,
        identity: Identity,
        operation: str,
        *,
        granted: bool,
        resource_id: str | None = None,
        count: int | None = None,
    ) -> None:
        self._sink.emit(
            AccessDecisionEvent.for_identity(
                identity,
                operation=operation,
                resource=self.resource,
                granted=granted,
                resource_id=resource_id,
                count=count,
            )
        )
