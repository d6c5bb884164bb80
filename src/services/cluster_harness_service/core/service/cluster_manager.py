from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Protocol, runtime_checkable

from services.cluster_harness_service.core.models import RuntimeContext, WorkerQuery


@runtime_checkable
class WorkerHandle(Protocol):
    """Protocol describing one worker of a running cluster."""

    @property
    def name(self) -> str:  # pragma: no cover
        """Identifier used in log and error messages."""

    def ask(self, query: WorkerQuery) -> Future[int]:  # pragma: no cover
        """Send an accounting query, the future resolves to the worker's answer."""


@runtime_checkable
class ClusterManager(Protocol):
    """Protocol describing the ClusterManager"""

    @property
    def cluster(self) -> Any:  # pragma: no cover
        """The engine cluster object, None before start."""

    @property
    def running(self) -> bool:  # pragma: no cover
        """True while the cluster accepts work."""

    def start(self, context: RuntimeContext) -> RuntimeContext:  # pragma: no cover
        """Construct and start the cluster.

        Args:
            context: values resolved by the rule so far (web UI port, coordination address).

        Returns:
            the context completed with the cluster's own addresses.
        """

    def stop(self) -> None:  # pragma: no cover
        """Stop the cluster and clean up resources."""

    def worker_handles(self) -> list[WorkerHandle]:  # pragma: no cover
        """Handles to every worker of the running cluster."""
