from __future__ import annotations

import concurrent.futures
from typing import Sequence

from logger import get_logger
from services.cluster_harness_service.core.config import get_harness_config
from services.cluster_harness_service.core.models import LeakReport, WorkerQuery
from services.cluster_harness_service.core.service.cluster_manager import WorkerHandle
from services.shared.exceptions import ResourceLeakError, VerificationTimeoutError

logger = get_logger(__name__)


class LeakVerifier:
    """
    Shutdown accounting for a running cluster.

    Every worker is asked how many broadcast variables it still references
    and how many connections it has open. Each query type is sent to all
    workers at once and the batch is awaited with a single timeout.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = (
            timeout if timeout is not None else get_harness_config().shutdown_timeout
        )

    def collect(
        self, workers: Sequence[WorkerHandle], running: bool = True
    ) -> LeakReport:
        """
        Ask every worker for its outstanding resources and sum the answers.

        Args:
            workers: handles of the cluster's workers.
            running: False when the cluster never reached the running state;
                no worker is contacted and an empty report is returned.

        Raises:
            VerificationTimeoutError: a worker did not answer within the timeout.
        """
        if not running:
            logger.debug("Cluster is not running, skipping shutdown accounting")
            return LeakReport()

        broadcast_variables = self._ask_all(
            workers, WorkerQuery.BROADCAST_VARIABLES_WITH_REFERENCES
        )
        active_connections = self._ask_all(workers, WorkerQuery.NUM_ACTIVE_CONNECTIONS)

        report = LeakReport(
            unreleased_broadcast_variables=sum(broadcast_variables),
            active_connections=sum(active_connections),
        )
        logger.debug("Shutdown accounting over %d worker(s): %s", len(workers), report)
        return report

    def _ask_all(self, workers: Sequence[WorkerHandle], query: WorkerQuery) -> list[int]:
        futures = {worker.ask(query): worker.name for worker in workers}
        if not futures:
            return []

        _, pending = concurrent.futures.wait(futures, timeout=self.timeout)
        if pending:
            for future in pending:
                future.cancel()
            names = sorted(futures[future] for future in pending)
            logger.error(
                "Worker(s) %s did not answer '%s' within %.1fs", names, query, self.timeout
            )
            raise VerificationTimeoutError(
                f"Worker(s) {names} did not answer '{query}' within {self.timeout}s",
                pending=names,
            )

        return [int(future.result()) for future in futures]

    @staticmethod
    def verify(report: LeakReport) -> None:
        """
        Raises:
            ResourceLeakError: if any count of the report is not zero.
        """
        if report.unreleased_broadcast_variables != 0:
            raise ResourceLeakError("Not all broadcast variables were released.", report)
        if report.active_connections != 0:
            raise ResourceLeakError("Not all TCP connections were released.", report)
