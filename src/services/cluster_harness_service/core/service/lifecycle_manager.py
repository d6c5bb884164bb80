from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Generator

from distributed import Client

from logger import get_logger
from services.cluster_harness_service.core.config import (
    HarnessServiceConfig,
    get_harness_config,
)
from services.cluster_harness_service.core.models import (
    ClusterSettings,
    LifecycleState,
    RuntimeContext,
)
from services.cluster_harness_service.core.service.cluster_manager import (
    ClusterManager,
)
from services.cluster_harness_service.core.service.dask_cluster_manager import (
    DaskClusterManager,
)
from services.cluster_harness_service.core.service.environment import (
    ExecutionEnvironment,
)
from services.cluster_harness_service.core.service.leak_verifier import LeakVerifier
from services.coordination_service.core.service.coordination_service import (
    EmbeddedCoordinationService,
)
from services.shared.exceptions import HarnessError, ShutdownFailure, StartupFailure
from services.shared.ports import WEB_UI_DISABLED, acquire_available_port

logger = get_logger(__name__)

_RESTARTABLE_STATES = (
    LifecycleState.NOT_STARTED,
    LifecycleState.STOPPED,
    LifecycleState.FAILED,
)


class ClusterRule:
    """
    Starts a local cluster before a test and tears it down afterwards.

    Startup order: coordination service (HA mode only), web UI port, cluster,
    default execution environment. Teardown runs in reverse and checks that
    the workers released every broadcast variable and connection before the
    cluster is stopped.

    Example:
        rule = ClusterRule(ClusterSettings(task_managers=1, task_slots=4))
        rule.before()
        try:
            dask.bag.from_sequence([1, 2, 3, 4]).compute()
        finally:
            rule.after()
    """

    def __init__(
        self,
        settings: ClusterSettings | None = None,
        config: HarnessServiceConfig | None = None,
        cluster_factory: Callable[[ClusterSettings], ClusterManager] | None = None,
        coordination_factory: Callable[[], EmbeddedCoordinationService] | None = None,
        environment: ExecutionEnvironment | None = None,
        verifier: LeakVerifier | None = None,
    ) -> None:
        self.settings = settings or ClusterSettings()
        self._config = config or get_harness_config()
        self._cluster_factory = cluster_factory or (
            lambda settings: DaskClusterManager(settings, self._config)
        )
        self._coordination_factory = coordination_factory or EmbeddedCoordinationService
        self._environment = environment or ExecutionEnvironment(
            self._config.client_timeout
        )
        self._verifier = verifier or LeakVerifier(self._config.shutdown_timeout)

        self._state = LifecycleState.NOT_STARTED
        self._context = RuntimeContext()
        self._cluster: ClusterManager | None = None
        self._coordination: EmbeddedCoordinationService | None = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def context(self) -> RuntimeContext:
        return self._context

    @property
    def cluster(self) -> ClusterManager | None:
        return self._cluster

    @property
    def client(self) -> Client | None:
        return self._environment.client

    @property
    def coordination_address(self) -> str | None:
        return self._context.coordination_address

    @property
    def scheduler_address(self) -> str | None:
        return self._context.scheduler_address

    def get_web_ui_port(self) -> int:
        """
        Returns the port under which the web UI can be reached.

        Returns:
            int: the port, or -1 if the web UI is not enabled.
        """
        if not self.settings.web_ui_enabled:
            return WEB_UI_DISABLED
        if self._context.web_ui_port is not None:
            return self._context.web_ui_port
        return self.settings.web_ui_port

    def before(self) -> None:
        self.start()

    def after(self) -> None:
        self.stop()

    def __enter__(self) -> ClusterRule:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def start(self) -> None:
        if self._state not in _RESTARTABLE_STATES:
            raise HarnessError(f"Cannot start a rule in state '{self._state}'")

        self._state = LifecycleState.STARTING
        self._context = RuntimeContext()
        try:
            if self.settings.coordination_service_enabled:
                self._start_coordination_service()

            if self.settings.web_ui_enabled:
                self._resolve_web_ui_port()

            self._start_cluster()
            self._environment.register(self._cluster.cluster)
        except Exception as e:
            self._state = LifecycleState.FAILED
            logger.error("Exception while starting local cluster: %s", e)
            try:
                self._stop_resources()
            except ShutdownFailure as cleanup_error:
                logger.error(
                    "Cleanup after failed startup raised an error: %s", cleanup_error
                )
            self._state = LifecycleState.FAILED
            raise StartupFailure("Exception while starting local cluster.") from e

        self._state = LifecycleState.RUNNING
        logger.info("Local cluster is running (scheduler %s)", self.scheduler_address)

    def _start_coordination_service(self) -> None:
        logger.info(
            "Coordination service is chosen for HA. Starting local coordination service..."
        )
        self._coordination = self._coordination_factory()
        self._coordination.start()
        self._context = self._context.model_copy(
            update={"coordination_address": self._coordination.address}
        )
        logger.debug("Coordination service started on %s", self._coordination.address)

    def _resolve_web_ui_port(self) -> None:
        port = self.settings.web_ui_port
        if self.settings.auto_web_ui_port:
            port = acquire_available_port(self._config.bind_host)
        self._context = self._context.model_copy(update={"web_ui_port": port})

    def _start_cluster(self) -> None:
        self._cluster = self._cluster_factory(self.settings)
        self._context = self._cluster.start(self._context)

    def stop(self) -> None:
        if self._state in _RESTARTABLE_STATES:
            logger.debug("Rule in state '%s', nothing to stop", self._state)
            return
        if self._state == LifecycleState.STOPPING:
            raise HarnessError("Rule is already stopping")

        self._stop_resources()

    def _stop_resources(self) -> None:
        """
        Release whatever the rule holds, in reverse startup order.

        Each step runs even when an earlier one failed; the first failure is
        raised afterwards as a ShutdownFailure.
        """
        self._state = LifecycleState.STOPPING
        first_error: Exception | None = None

        try:
            self._stop_cluster()
        except Exception as e:
            first_error = e

        try:
            self._stop_coordination_service()
        except Exception as e:
            if first_error is None:
                first_error = e
            else:
                logger.error("Exception while stopping coordination service: %s", e)

        try:
            self._environment.unregister()
        except Exception as e:
            if first_error is None:
                first_error = e
            else:
                logger.error("Exception while unregistering environment: %s", e)
        finally:
            self._state = LifecycleState.STOPPED

        if first_error is not None:
            logger.error("Exception while stopping local cluster: %s", first_error)
            raise ShutdownFailure(
                "Exception while stopping local cluster.", cause=first_error
            ) from first_error
        logger.info("Local cluster stopped cleanly.")

    def _stop_cluster(self) -> None:
        cluster, self._cluster = self._cluster, None
        if cluster is None:
            return

        try:
            report = self._verifier.collect(cluster.worker_handles(), cluster.running)
        except Exception:
            try:
                cluster.stop()
            except Exception as e:
                logger.error(
                    "Exception while stopping cluster after failed accounting: %s", e
                )
            raise

        cluster.stop()
        self._verifier.verify(report)

    def _stop_coordination_service(self) -> None:
        coordination, self._coordination = self._coordination, None
        if coordination is not None:
            coordination.stop()


@contextmanager
def cluster_rule(
    settings: ClusterSettings | None = None,
) -> Generator[ClusterRule, None, None]:
    """Context manager to start/stop a ClusterRule."""
    rule = ClusterRule(settings)
    rule.start()
    try:
        yield rule
    finally:
        rule.stop()
