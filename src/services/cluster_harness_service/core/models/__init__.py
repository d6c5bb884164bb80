from services.cluster_harness_service.core.models.runtime import (
    LeakReport,
    LifecycleState,
    RuntimeContext,
    WorkerQuery,
)
from services.cluster_harness_service.core.models.settings import (
    RESERVED_ENGINE_OPTIONS,
    ClusterSettings,
    HighAvailabilityMode,
)

__all__ = [
    "ClusterSettings",
    "HighAvailabilityMode",
    "LeakReport",
    "LifecycleState",
    "RESERVED_ENGINE_OPTIONS",
    "RuntimeContext",
    "WorkerQuery",
]
