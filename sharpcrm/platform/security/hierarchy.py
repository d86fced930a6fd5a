from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry import trace

from sharpcrm.metrics import observe_hierarchy_resolution
from sharpcrm.platform.security.context import (
    DELETED_ATTRIBUTE,
    TENANT_ATTRIBUTE,
    Identity,
    Role,
    VisibilityScope,
)
from sharpcrm.platform.security.errors import StoreError
from sharpcrm.platform.security.predicates import Eq, Predicate, and_, eq_or_in, not_flagged

if TYPE_CHECKING:
    from sharpcrm.persistence.store import AttributeStore


logger = logging.getLogger("sharpcrm.hierarchy")
tracer = trace.get_tracer("sharpcrm.hierarchy")

REPORTING_TO_INDEX = "ReportingToIndex"
USER_ID_ATTRIBUTE = "userId"


class HierarchyResolver:
    """Resolve the users who report to a manager inside one tenant.

    By default only direct reports holding the SALES_REP role count. With ``transitive``
    enabled the resolver walks ``reportingTo`` links level by level, following managers
    and reps, until no new users appear or ``max_depth`` levels have been visited.
    Store failures propagate; they are never turned into an empty set.
    """

    def __init__(
        self,
        store: AttributeStore,
        users_table: str,
        *,
        transitive: bool = False,
        max_depth: int = 10,
    ) -> None:
        self._store = store
        self._users_table = users_table
        self._transitive = transitive
        self._max_depth = max(1, max_depth)

    @property
    def mode(self) -> str:
        return "transitive" if self._transitive else "direct"

    async def subordinates_of(self, manager_id: str, tenant_id: str) -> frozenset[str]:
        with tracer.start_as_current_span("access.hierarchy.resolve") as span:
            span.set_attribute("hierarchy.mode", self.mode)
            try:
                if self._transitive:
                    subordinates = await self._closure(manager_id, tenant_id)
                else:
                    subordinates = await self._direct_reports(manager_id, tenant_id, (Role.SALES_REP,))
            except StoreError:
                observe_hierarchy_resolution("error")
                logger.warning(
                    "hierarchy.resolution_failed",
                    exc_info=True,
                    extra={"user_id": manager_id, "tenant_id": tenant_id},
                )
                raise

            span.set_attribute("hierarchy.subordinates", len(subordinates))
            observe_hierarchy_resolution("ok", len(subordinates))
            logger.debug(
                "hierarchy.resolved",
                extra={"user_id": manager_id, "tenant_id": tenant_id, "count": len(subordinates)},
            )
            return subordinates

    async def resolve_scope(self, identity: Identity) -> VisibilityScope:
        """Visibility scope for ``identity``, memoized on the identity for the rest of the request."""

        return await identity.memoized(f"access.visibility_scope.{self.mode}", lambda: self._build_scope(identity))

    async def _build_scope(self, identity: Identity) -> VisibilityScope:
        if not identity.tenant_id or not identity.user_id:
            return VisibilityScope(identity=identity, owners=frozenset())
        if identity.role == Role.ADMIN:
            return VisibilityScope(identity=identity, owners=None)
        if identity.role == Role.SALES_MANAGER:
            subordinates = await self.subordinates_of(identity.user_id, identity.tenant_id)
            return VisibilityScope(identity=identity, owners=frozenset({identity.user_id}) | subordinates)
        if identity.role == Role.SALES_REP:
            return VisibilityScope(identity=identity, owners=frozenset({identity.user_id}))
        return VisibilityScope(identity=identity, owners=frozenset())

    async def _direct_reports(self, manager_id: str, tenant_id: str, roles: tuple[Role, ...]) -> frozenset[str]:
        filter_: Predicate = and_(
            eq_or_in("role", [role.value for role in roles], param="role"),
            Eq(TENANT_ATTRIBUTE, tenant_id, param="tenantId"),
            not_flagged(DELETED_ATTRIBUTE),
        )
        users = await self._store.query(self._users_table, REPORTING_TO_INDEX, manager_id, filter=filter_)
        return frozenset(str(user[USER_ID_ATTRIBUTE]) for user in users if user.get(USER_ID_ATTRIBUTE))

    async def _closure(self, manager_id: str, tenant_id: str) -> frozenset[str]:
        visited: set[str] = {manager_id}
        frontier = [manager_id]
        depth = 0
        while frontier and depth < self._max_depth:
            next_frontier: list[str] = []
            for current in frontier:
                reports = await self._direct_reports(current, tenant_id, (Role.SALES_MANAGER, Role.SALES_REP))
                for user_id in sorted(reports - visited):
                    visited.add(user_id)
                    next_frontier.append(user_id)
            frontier = next_frontier
            depth += 1
        visited.discard(manager_id)
        return frozenset(visited)
