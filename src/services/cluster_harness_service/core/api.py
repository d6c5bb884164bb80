from services.cluster_harness_service.core.builder.builder import ClusterRuleBuilder
from services.cluster_harness_service.core.models import (
    ClusterSettings,
    HighAvailabilityMode,
    LeakReport,
    LifecycleState,
    RuntimeContext,
)
from services.cluster_harness_service.core.service import (
    ClusterRule,
    LeakVerifier,
    cluster_rule,
)
from services.shared.ports import AVAILABLE_PORT

__all__ = [
    "AVAILABLE_PORT",
    "ClusterRule",
    "ClusterRuleBuilder",
    "ClusterSettings",
    "HighAvailabilityMode",
    "LeakReport",
    "LeakVerifier",
    "LifecycleState",
    "RuntimeContext",
    "cluster_rule",
]
