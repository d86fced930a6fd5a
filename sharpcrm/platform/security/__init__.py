from sharpcrm.platform.security.context import Identity, Role, VisibilityScope, normalize_role
from sharpcrm.platform.security.errors import AccessEngineError, AuthenticationError, StoreError, UnknownResourceError
from sharpcrm.platform.security.evaluator import AccessEvaluator
from sharpcrm.platform.security.filters import AccessFilter, build_filter, build_predicate
from sharpcrm.platform.security.hierarchy import HierarchyResolver
from sharpcrm.platform.security.policies import (
    InMemoryPolicyBackend,
    PolicyBackend,
    ResourceAction,
    get_policy_backend,
    set_policy_backend,
)
from sharpcrm.platform.security.service import ResourceAccessService, ResourceDefinition
from sharpcrm.platform.security.sink import (
    AccessDecisionEvent,
    AccessDecisionSink,
    AuditAccessDecisionSink,
    RecordingAccessDecisionSink,
)

__all__ = [
    "Identity",
    "Role",
    "VisibilityScope",
    "normalize_role",
    "AccessEngineError",
    "AuthenticationError",
    "StoreError",
    "UnknownResourceError",
    "AccessEvaluator",
    "AccessFilter",
    "build_filter",
    "build_predicate",
    "HierarchyResolver",
    "PolicyBackend",
    "InMemoryPolicyBackend",
    "ResourceAction",
    "get_policy_backend",
    "set_policy_backend",
    "ResourceAccessService",
    "ResourceDefinition",
    "AccessDecisionEvent",
    "AccessDecisionSink",
    "AuditAccessDecisionSink",
    "RecordingAccessDecisionSink",
]
