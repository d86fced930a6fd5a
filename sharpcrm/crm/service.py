from __future__ import annotations

import logging
from dataclasses import dataclass

from sharpcrm.core.config import Settings
from sharpcrm.crm.resources import resource_definitions, table_schemas
from sharpcrm.persistence.store import AttributeStore
from sharpcrm.platform.security.errors import UnknownResourceError
from sharpcrm.platform.security.evaluator import AccessEvaluator
from sharpcrm.platform.security.hierarchy import HierarchyResolver
from sharpcrm.platform.security.policies import PolicyBackend
from sharpcrm.platform.security.service import ResourceAccessService
from sharpcrm.platform.security.sink import AccessDecisionSink, AuditAccessDecisionSink


logger = logging.getLogger("sharpcrm.access")


@dataclass(slots=True)
class AccessServices:
    """Configured access services keyed by resource name, sharing one resolver."""

    resolver: HierarchyResolver
    evaluator: AccessEvaluator
    services: dict[str, ResourceAccessService]

    def get(self, resource: str) -> ResourceAccessService:
        try:
            return self.services[resource]
        except KeyError:
            raise UnknownResourceError(resource) from None

    def __contains__(self, resource: object) -> bool:
        return resource in self.services

    @property
    def resources(self) -> list[str]:
        return list(self.services)


def build_access_services(
    store: AttributeStore,
    settings: Settings,
    *,
    sink: AccessDecisionSink | None = None,
    policy: PolicyBackend | None = None,
) -> AccessServices:
    for schema in table_schemas(settings):
        store.register_table(schema)

    resolver = HierarchyResolver(
        store,
        settings.users_table_name,
        transitive=settings.hierarchy_transitive,
        max_depth=settings.hierarchy_max_depth,
    )
    evaluator = AccessEvaluator(resolver, policy=policy)
    decision_sink = sink or AuditAccessDecisionSink()
    services = {
        name: ResourceAccessService(definition, store, resolver, evaluator=evaluator, sink=decision_sink)
        for name, definition in resource_definitions(settings).items()
    }
    logger.info(
        "access.services_ready",
        extra={"count": len(services), "operation": f"hierarchy.{resolver.mode}"},
    )
    return AccessServices(resolver=resolver, evaluator=evaluator, services=services)
