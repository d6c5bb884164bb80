from __future__ import annotations

import asyncio

from distributed.diagnostics.plugin import SchedulerPlugin

from logger import get_logger
from services.coordination_service.core.service.coordination_client import (
    CoordinationClient,
)

logger = get_logger(__name__)

LEADER_KEY = "leader"
WORKERS_PREFIX = "workers/"


class CoordinationRegistrationPlugin(SchedulerPlugin):
    """
    Publishes the scheduler and its workers to the coordination service.

    The scheduler registers itself under LEADER_KEY when it starts and every
    connected worker under ``workers/<address>``. Leadership is withdrawn when
    the scheduler closes.
    """

    name = "harness-coordination-registration"

    def __init__(self, coordination_address: str) -> None:
        self.coordination_address = coordination_address
        self.scheduler_address: str | None = None
        self._client: CoordinationClient | None = None

    async def start(self, scheduler) -> None:
        self._client = CoordinationClient(self.coordination_address)
        self.scheduler_address = scheduler.address
        await asyncio.to_thread(self._client.put, LEADER_KEY, self.scheduler_address)
        logger.info(
            "Scheduler %s registered as leader with coordination service %s",
            self.scheduler_address,
            self.coordination_address,
        )

    async def add_worker(self, scheduler, worker: str) -> None:
        if self._client is not None:
            await asyncio.to_thread(
                self._client.put, WORKERS_PREFIX + worker, self.scheduler_address
            )
            logger.debug("Worker %s registered with coordination service", worker)

    async def remove_worker(self, scheduler, worker: str, **kwargs) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.delete, WORKERS_PREFIX + worker)
            logger.debug("Worker %s removed from coordination service", worker)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            leader = await asyncio.to_thread(client.get, LEADER_KEY)
            if leader == self.scheduler_address:
                await asyncio.to_thread(client.delete, LEADER_KEY)
                logger.info("Scheduler %s withdrew its leadership", leader)
        except KeyError:
            logger.debug("No leader registered, nothing to withdraw")
        finally:
            client.close()
