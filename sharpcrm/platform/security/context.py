from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar


TENANT_ATTRIBUTE = "tenantId"
DELETED_ATTRIBUTE = "isDeleted"
NO_ACCESS_OWNER = "__NO_ACCESS__"

T = TypeVar("T")


class Role(StrEnum):
    ADMIN = "ADMIN"
    SALES_MANAGER = "SALES_MANAGER"
    SALES_REP = "SALES_REP"


_ROLE_ALIASES: dict[str, Role] = {
    "admin": Role.ADMIN,
    "super_admin": Role.ADMIN,
    "superadmin": Role.ADMIN,
    "manager": Role.SALES_MANAGER,
    "sales_manager": Role.SALES_MANAGER,
    "rep": Role.SALES_REP,
    "sales_rep": Role.SALES_REP,
}


def normalize_role(value: str | None) -> Role | str:
    """Map provider-specific role spellings onto the canonical set.

    Unrecognized spellings are returned verbatim so evaluation can deny them.
    """

    if value is None:
        return ""
    if isinstance(value, Role):
        return value
    normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    return _ROLE_ALIASES.get(normalized, str(value))


@dataclass(frozen=True, slots=True)
class Identity:
    """Verified caller identity attached to a request."""

    user_id: str
    tenant_id: str
    role: Role | str
    email: str | None = None
    reporting_to: str | None = None
    correlation_id: str | None = None
    _memo: dict[str, asyncio.Future[Any]] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_claims(cls, claims: dict[str, Any], *, correlation_id: str | None = None) -> Identity:
        user_id = claims.get("userId") or claims.get("sub")
        tenant_id = claims.get("tenantId") or claims.get("tenant_id")
        return cls(
            user_id=str(user_id) if user_id is not None else "",
            tenant_id=str(tenant_id) if tenant_id is not None else "",
            role=normalize_role(claims.get("role")),
            email=claims.get("email"),
            reporting_to=claims.get("reportingTo") or claims.get("reporting_to"),
            correlation_id=correlation_id,
        )

    @property
    def role_name(self) -> str:
        return str(self.role)

    async def memoized(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory`` once per ``key`` for this identity; concurrent callers await the same task.

        A failed run is forgotten so the next caller retries instead of reusing the error.
        """

        task = self._memo.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._memo[key] = task
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._memo.get(key) is task:
                del self._memo[key]
            raise


@dataclass(frozen=True, slots=True)
class VisibilityScope:
    """Owners an identity may see, resolved once per request.

    ``owners`` is ``None`` for tenant-wide visibility (ADMIN) and an empty
    frozenset for identities that see nothing.
    """

    identity: Identity
    owners: frozenset[str] | None

    @property
    def tenant_id(self) -> str:
        return self.identity.tenant_id

    @property
    def is_tenant_wide(self) -> bool:
        return self.owners is None

    def can_view_owner(self, owner_id: str | None) -> bool:
        if self.owners is None:
            return True
        return owner_id is not None and owner_id in self.owners
