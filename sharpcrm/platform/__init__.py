from sharpcrm.platform.security import (
    AccessEvaluator,
    HierarchyResolver,
    Identity,
    ResourceAccessService,
    ResourceDefinition,
    Role,
)

__all__ = [
    "AccessEvaluator",
    "HierarchyResolver",
    "Identity",
    "ResourceAccessService",
    "ResourceDefinition",
    "Role",
]
