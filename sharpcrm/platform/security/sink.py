from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from sharpcrm import audit
from sharpcrm.metrics import observe_access_decision
from sharpcrm.platform.security.context import Identity


logger = logging.getLogger("sharpcrm.access")


@dataclass(frozen=True, slots=True)
class AccessDecisionEvent:
    operation: str
    resource: str
    user_id: str
    role: str
    tenant_id: str
    granted: bool
    resource_id: str | None = None
    count: int | None = None
    correlation_id: str | None = None

    @classmethod
    def for_identity(
        cls,
        identity: Identity,
        *,
        operation: str,
        resource: str,
        granted: bool,
        resource_id: str | None = None,
        count: int | None = None,
    ) -> AccessDecisionEvent:
        return cls(
            operation=operation,
            resource=resource,
            user_id=identity.user_id,
            role=identity.role_name,
            tenant_id=identity.tenant_id,
            granted=granted,
            resource_id=resource_id,
            count=count,
            correlation_id=identity.correlation_id,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class AccessDecisionSink(Protocol):
    """Receives one event per access decision taken by the engine."""

    def emit(self, event: AccessDecisionEvent) -> None:
        ...


class RecordingAccessDecisionSink:
    def __init__(self) -> None:
        self.events: list[AccessDecisionEvent] = []

    def emit(self, event: AccessDecisionEvent) -> None:
        self.events.append(event)

    def clear(self) -> None:
        self.events.clear()


class AuditAccessDecisionSink:
    """Log every decision, count it, and keep denied ones in the audit trail."""

    def emit(self, event: AccessDecisionEvent) -> None:
        observe_access_decision(resource=event.resource, operation=event.operation, granted=event.granted)
        logger.info(
            "access.decision",
            extra={
                "operation": event.operation,
                "resource": event.resource,
                "resource_id": event.resource_id,
                "user_id": event.user_id,
                "role": event.role,
                "tenant_id": event.tenant_id,
                "granted": event.granted,
                "count": event.count,
            },
        )
        if event.granted:
            return

        audit.record(
            actor_user_id=event.user_id,
            tenant_id=event.tenant_id,
            entity_type=f"access.{event.resource}",
            entity_id=event.resource_id,
            action="access.denied",
            details={"operation": event.operation, "role": event.role},
            correlation_id=event.correlation_id,
        )
