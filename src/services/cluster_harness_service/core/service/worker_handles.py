from __future__ import annotations

import asyncio
import time
from concurrent.futures import Future
from typing import Any, Awaitable, Callable

from services.cluster_harness_service.core.models import WorkerQuery


async def _settled_count(
    counter: Callable[[], int], grace: float, interval: float = 0.01
) -> int:
    """Read `counter` until it is zero or `grace` seconds passed; return the last value.

    The engine releases data and connections asynchronously, so a count read
    right after a job finished may still include items that are on their way out.
    """
    deadline = time.monotonic() + grace
    count = counter()
    while count and time.monotonic() < deadline:
        await asyncio.sleep(interval)
        count = counter()
    return count


async def count_broadcast_variables_with_references(worker: Any, grace: float) -> int:
    """Number of data keys the worker still holds in memory."""
    return await _settled_count(lambda: len(worker.data), grace)


async def count_active_connections(worker: Any, grace: float) -> int:
    """Number of connections of the worker's RPC pool currently in use."""
    return await _settled_count(lambda: worker.rpc.active, grace)


_QUERIES: dict[WorkerQuery, Callable[[Any, float], Awaitable[int]]] = {
    WorkerQuery.BROADCAST_VARIABLES_WITH_REFERENCES: count_broadcast_variables_with_references,
    WorkerQuery.NUM_ACTIVE_CONNECTIONS: count_active_connections,
}


class DaskWorkerHandle:
    """
    Handle to an in-process dask worker.

    Queries run as coroutines on the worker's own event loop and are answered
    through a concurrent future, so callers on other threads can wait on many
    workers at once.
    """

    def __init__(
        self,
        worker: Any,
        loop: asyncio.AbstractEventLoop,
        release_grace_period: float = 0.0,
    ) -> None:
        self._worker = worker
        self._loop = loop
        self.release_grace_period = release_grace_period

    @property
    def name(self) -> str:
        return str(self._worker.address)

    def ask(self, query: WorkerQuery) -> Future[int]:
        try:
            handler = _QUERIES[WorkerQuery(query)]
        except (KeyError, ValueError) as e:
            raise ValueError(f"Unsupported worker query: {query!r}") from e
        return asyncio.run_coroutine_threadsafe(
            handler(self._worker, self.release_grace_period), self._loop
        )

    def __repr__(self) -> str:
        return f"DaskWorkerHandle({self.name})"
