from __future__ import annotations

from typing import Any

from sharpcrm.platform.security.context import TENANT_ATTRIBUTE, Identity, Role, VisibilityScope
from sharpcrm.platform.security.filters import build_predicate
from sharpcrm.platform.security.hierarchy import HierarchyResolver
from sharpcrm.platform.security.policies import PolicyBackend, ResourceAction, get_policy_backend
from sharpcrm.platform.security.predicates import matches


class AccessEvaluator:
    """Per-record access checks that agree with the bulk filter.

    A record is visible exactly when the predicate ``build_predicate`` produces for the
    same scope matches it, so a by-id lookup can never see more than a list would.
    Callers resolve the scope once per request with :meth:`scope_for` and pass it to
    every check; the checks themselves do no I/O.
    """

    def __init__(self, resolver: HierarchyResolver, *, policy: PolicyBackend | None = None) -> None:
        self._resolver = resolver
        self._policy = policy

    @property
    def policy(self) -> PolicyBackend:
        return self._policy if self._policy is not None else get_policy_backend()

    async def scope_for(self, identity: Identity) -> VisibilityScope:
        return await self._resolver.resolve_scope(identity)

    def can_access(
        self,
        record: dict[str, Any],
        scope: VisibilityScope,
        owner_attribute: str,
        *,
        include_deleted: bool = False,
    ) -> bool:
        if not scope.tenant_id or record.get(TENANT_ATTRIBUTE) != scope.tenant_id:
            return False
        return matches(build_predicate(scope, owner_attribute, include_deleted=include_deleted), record)

    @staticmethod
    def can_view_owner(owner_id: str, scope: VisibilityScope) -> bool:
        return scope.can_view_owner(owner_id)

    def is_action_allowed(self, resource: str, action: ResourceAction, identity: Identity) -> bool:
        if identity.role not in set(Role) or not identity.tenant_id:
            return False
        return self.policy.is_action_allowed(resource, action, identity)

    def can_create(self, resource: str, identity: Identity) -> bool:
        return self.is_action_allowed(resource, ResourceAction.CREATE, identity)

    def can_modify(
        self,
        record: dict[str, Any],
        scope: VisibilityScope,
        owner_attribute: str,
        resource: str,
        action: ResourceAction,
    ) -> bool:
        """Edit and soft delete: the record's owner or anyone above them, within policy."""

        if not self.is_action_allowed(resource, action, scope.identity):
            return False
        return self.can_access(record, scope, owner_attribute)

    def can_hard_delete(self, record: dict[str, Any], identity: Identity, resource: str) -> bool:
        if identity.role != Role.ADMIN or not identity.tenant_id:
            return False
        if record.get(TENANT_ATTRIBUTE) != identity.tenant_id:
            return False
        return self.is_action_allowed(resource, ResourceAction.DELETE, identity)
