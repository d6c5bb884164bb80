from services.cluster_harness_service.core.service.cluster_manager import (
    ClusterManager,
    WorkerHandle,
)
from services.cluster_harness_service.core.service.dask_cluster_manager import (
    DaskClusterManager,
)
from services.cluster_harness_service.core.service.environment import (
    ExecutionEnvironment,
)
from services.cluster_harness_service.core.service.leak_verifier import LeakVerifier
from services.cluster_harness_service.core.service.lifecycle_manager import (
    ClusterRule,
    cluster_rule,
)

__all__ = [
    "ClusterManager",
    "ClusterRule",
    "DaskClusterManager",
    "ExecutionEnvironment",
    "LeakVerifier",
    "WorkerHandle",
    "cluster_rule",
]
