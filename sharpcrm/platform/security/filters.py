from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sharpcrm.platform.security.context import (
    DELETED_ATTRIBUTE,
    NO_ACCESS_OWNER,
    TENANT_ATTRIBUTE,
    Identity,
    VisibilityScope,
)
from sharpcrm.platform.security.hierarchy import HierarchyResolver
from sharpcrm.platform.security.predicates import Eq, Predicate, and_, eq_or_in, not_flagged
from sharpcrm.platform.security.renderers import ExpressionRenderer


OWNER_PARAM = "owner"

_renderer = ExpressionRenderer()


@dataclass(slots=True)
class AccessFilter:
    """Access predicate for one identity plus its rendering in store expression syntax."""

    predicate: Predicate
    filter_expression: str
    bound_values: dict[str, Any] = field(default_factory=dict)
    attribute_names: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_predicate(cls, predicate: Predicate, renderer: ExpressionRenderer | None = None) -> AccessFilter:
        rendered = (renderer or _renderer).render(predicate)
        return cls(
            predicate=predicate,
            filter_expression=rendered.expression,
            bound_values=rendered.values,
            attribute_names=rendered.names,
        )


def tenant_clause(tenant_id: str) -> Predicate:
    return Eq(TENANT_ATTRIBUTE, tenant_id, param="tenantId")


def role_clause(scope: VisibilityScope, owner_attribute: str) -> Predicate | None:
    """Ownership clause for the scope; ``None`` means tenant-wide visibility."""

    if scope.owners is None:
        return None
    if not scope.owners:
        return Eq(owner_attribute, NO_ACCESS_OWNER, param=OWNER_PARAM)
    return eq_or_in(owner_attribute, sorted(scope.owners), param=OWNER_PARAM)


def build_predicate(scope: VisibilityScope, owner_attribute: str, *, include_deleted: bool = False) -> Predicate:
    """Tenant clause AND soft-delete clause AND role clause, in that order."""

    return and_(
        tenant_clause(scope.tenant_id),
        None if include_deleted else not_flagged(DELETED_ATTRIBUTE),
        role_clause(scope, owner_attribute),
    )


async def build_filter(
    identity: Identity,
    resolver: HierarchyResolver,
    owner_attribute: str,
    *,
    include_deleted: bool = False,
) -> AccessFilter:
    scope = await resolver.resolve_scope(identity)
    return AccessFilter.from_predicate(build_predicate(scope, owner_attribute, include_deleted=include_deleted))
