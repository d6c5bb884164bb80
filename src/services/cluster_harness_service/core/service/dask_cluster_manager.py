from __future__ import annotations

import logging
from typing import Any

import dask
from distributed import LocalCluster
from distributed.core import Status

from logger import get_logger
from services.cluster_harness_service.core.config import (
    HarnessServiceConfig,
    get_harness_config,
)
from services.cluster_harness_service.core.models import ClusterSettings, RuntimeContext
from services.cluster_harness_service.core.service.coordination_plugin import (
    CoordinationRegistrationPlugin,
)
from services.cluster_harness_service.core.service.worker_handles import (
    DaskWorkerHandle,
)
from services.shared.exceptions import PortAllocationError

logger = get_logger(__name__)


class DaskClusterManager:
    """In-process dask cluster: one scheduler and threaded workers in this process."""

    def __init__(
        self, settings: ClusterSettings, config: HarnessServiceConfig | None = None
    ) -> None:
        self.settings = settings
        self._config = config or get_harness_config()
        self._cluster: LocalCluster | None = None
        self._engine_config: Any = None

    @property
    def cluster(self) -> LocalCluster | None:
        return self._cluster

    @property
    def running(self) -> bool:
        return self._cluster is not None and self._cluster.status == Status.running

    def build_engine_kwargs(self, context: RuntimeContext) -> dict[str, Any]:
        """LocalCluster keyword arguments for the given settings and context."""
        kwargs: dict[str, Any] = dict(self.settings.engine_options)
        kwargs.setdefault(
            "silence_logs",
            getattr(logging, self._config.silence_engine_logs.upper(), logging.WARNING),
        )
        kwargs.update(
            n_workers=self.settings.task_managers,
            threads_per_worker=self.settings.task_slots,
            processes=False,
            dashboard_address=(
                f"{self._config.bind_host}:{context.web_ui_port}"
                if context.web_ui_port is not None
                else None
            ),
        )
        if context.coordination_address is not None:
            kwargs["scheduler_kwargs"] = {
                "plugins": [CoordinationRegistrationPlugin(context.coordination_address)]
            }
        return kwargs

    def start(self, context: RuntimeContext) -> RuntimeContext:
        if self._cluster is not None:
            raise RuntimeError("Cluster already started")

        engine_kwargs = self.build_engine_kwargs(context)
        self._engine_config = dask.config.set(dict(self.settings.engine_config))
        try:
            logger.info(
                "Starting local cluster with %d worker(s) and %d slot(s) each...",
                self.settings.task_managers,
                self.settings.task_slots,
            )
            self._cluster = LocalCluster(**engine_kwargs)
        except Exception:
            self._restore_engine_config()
            raise

        logger.info("Local cluster started, scheduler at %s", self._cluster.scheduler_address)
        update: dict[str, Any] = {
            "scheduler_address": self._cluster.scheduler_address,
            "engine_kwargs": engine_kwargs,
        }
        if context.web_ui_port is not None:
            update["web_ui_port"] = self._check_web_ui_port(context.web_ui_port)
        return context.model_copy(update=update)

    def _check_web_ui_port(self, requested: int) -> int:
        """
        Port the dashboard actually serves on.

        distributed falls back to a random port when the requested one is
        taken. That is accepted for an automatically picked port; an explicit
        port that could not be bound stops the cluster.

        Raises:
            PortAllocationError: if an explicit port was not bound.
        """
        bound = int(self._cluster.scheduler.http_server.port)
        if bound == requested:
            return bound

        if self.settings.auto_web_ui_port:
            logger.warning(
                "Web UI port %d was taken before the cluster bound it, serving on %d",
                requested,
                bound,
            )
            return bound

        self.stop()
        raise PortAllocationError(
            f"Web UI port {requested} is already in use, the dashboard moved to {bound}"
        )

    def worker_handles(self) -> list[DaskWorkerHandle]:
        if self._cluster is None:
            return []
        loop = self._cluster.loop.asyncio_loop
        return [
            DaskWorkerHandle(worker, loop, self._config.release_grace_period)
            for worker in self._cluster.workers.values()
        ]

    def stop(self) -> None:
        cluster, self._cluster = self._cluster, None
        try:
            if cluster is not None:
                logger.info("Stopping local cluster...")
                cluster.close()
                logger.info("Local cluster stopped.")
        finally:
            self._restore_engine_config()

    def _restore_engine_config(self) -> None:
        engine_config, self._engine_config = self._engine_config, None
        if engine_config is not None:
            engine_config.__exit__(None, None, None)
