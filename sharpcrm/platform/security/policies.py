from __future__ import annotations

from enum import StrEnum
from threading import Lock
from typing import Protocol

from sharpcrm.platform.security.context import Identity, Role


class ResourceAction(StrEnum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


_ALL_ACTIONS = {action.value for action in ResourceAction}
_SALES_RESOURCES = ("deal", "product", "task", "contact", "lead", "quote")

DEFAULT_ROLE_PERMISSIONS: dict[str, dict[str, set[str]]] = {
    Role.ADMIN.value: {"*": set(_ALL_ACTIONS)},
    Role.SALES_MANAGER.value: {
        **{resource: set(_ALL_ACTIONS) for resource in _SALES_RESOURCES},
        "dealer": {ResourceAction.VIEW.value},
        "subsidiary": {ResourceAction.VIEW.value},
    },
    Role.SALES_REP.value: {resource: set(_ALL_ACTIONS) for resource in _SALES_RESOURCES},
}


class PolicyBackend(Protocol):
    """Pluggable role x resource x action permission check."""

    def is_action_allowed(self, resource: str, action: ResourceAction, identity: Identity) -> bool:
        ...


class InMemoryPolicyBackend:
    """Role permission matrix with a ``*`` resource wildcard."""

    def __init__(
        self,
        role_permissions: dict[str, dict[str, set[str]]] | None = None,
        *,
        default_allow: bool = True,
    ) -> None:
        self._role_permissions = role_permissions if role_permissions is not None else DEFAULT_ROLE_PERMISSIONS
        self._default_allow = default_allow

    def is_action_allowed(self, resource: str, action: ResourceAction, identity: Identity) -> bool:
        if self._default_allow:
            return True

        grants = self._role_permissions.get(str(identity.role), {})
        allowed = grants.get(resource, set()) | grants.get("*", set())
        return action.value in allowed


_POLICY_BACKEND: PolicyBackend = InMemoryPolicyBackend(default_allow=True)
_POLICY_LOCK = Lock()


def get_policy_backend() -> PolicyBackend:
    """Get the active policy backend instance."""

    return _POLICY_BACKEND


def set_policy_backend(backend: PolicyBackend) -> None:
    """Set the active policy backend instance."""

    global _POLICY_BACKEND
    with _POLICY_LOCK:
        _POLICY_BACKEND = backend
