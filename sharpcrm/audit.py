from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sharpcrm.context import get_correlation_id

MAX_AUDIT_ENTRIES = 10_000

audit_entries: list[dict[str, Any]] = []


@dataclass(frozen=True, slots=True)
class AuditEntry:
    actor_user_id: str
    tenant_id: str | None
    entity_type: str
    entity_id: str | None
    action: str
    details: dict[str, Any] = field(default_factory=dict)
    correlation_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def record(
    actor_user_id: str,
    tenant_id: str | None,
    entity_type: str,
    entity_id: str | None,
    action: str,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> AuditEntry:
    entry = AuditEntry(
        actor_user_id=actor_user_id,
        tenant_id=tenant_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details=details or {},
        correlation_id=correlation_id or get_correlation_id(),
    )
    audit_entries.append(asdict(entry))
    # oldest entries go first once the in-process trail is full
    overflow = len(audit_entries) - MAX_AUDIT_ENTRIES
    if overflow > 0:
        del audit_entries[:overflow]
    return entry


def entries_for(tenant_id: str, *, action: str | None = None) -> list[dict[str, Any]]:
    return [
        entry
        for entry in audit_entries
        if entry["tenant_id"] == tenant_id and (action is None or entry["action"] == action)
    ]
