from __future__ import annotations

import asyncio
import threading
import time
from contextlib import contextmanager
from typing import Generator

import grpc

from logger import configure_coordination_logger, get_logger
from logger.utils import COORDINATION_THREAD_NAME
from services.coordination_service.core.config import get_coordination_config
from services.coordination_service.core.infrastructure.server.src._coordination_server_grpc import (
    CoordinationServer,
)
from services.coordination_service.core.service.coordination_client import (
    CoordinationClient,
)
from services.shared.exceptions import (
    CoordinationServiceError,
    CoordinationStartupError,
    HarnessError,
)

logger = get_logger(__name__)


class EmbeddedCoordinationService:
    """Single coordination ensemble member served from a daemon thread.

    The member binds an OS-assigned port unless one is given, so its address
    is only known after `start()` returned.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        startup_timeout: float | None = None,
        stop_grace: float | None = None,
        stop_timeout: float | None = None,
    ) -> None:
        config = get_coordination_config()
        self.host = host if host is not None else config.host
        self._requested_port = port if port is not None else config.port
        self.startup_timeout = (
            startup_timeout if startup_timeout is not None else config.startup_timeout
        )
        self.stop_grace = stop_grace if stop_grace is not None else config.stop_grace
        self.stop_timeout = (
            stop_timeout if stop_timeout is not None else config.stop_timeout
        )
        self._options = config.channel_options

        self._server_thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_requested: asyncio.Event | None = None
        self._bound = threading.Event()
        self._port: int | None = None
        self._error: BaseException | None = None

    @property
    def port(self) -> int:
        if self._port is None:
            raise HarnessError("Coordination service has not been started")
        return self._port

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._server_thread is not None and self._server_thread.is_alive()

    def __enter__(self) -> EmbeddedCoordinationService:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def start(self) -> None:
        if self.running:
            raise HarnessError(f"Coordination service already running on {self.address}")

        logger.info("Starting local coordination service...")
        configure_coordination_logger()
        self._bound.clear()
        self._port = None
        self._error = None

        self._server_thread = threading.Thread(
            target=self._run, daemon=True, name=COORDINATION_THREAD_NAME
        )
        self._server_thread.start()
        self._wait_for_readiness()
        logger.debug("Coordination service started on %s", self.address)

    def _run(self) -> None:
        try:
            asyncio.run(self._serve())
        except Exception as e:
            logger.exception("Coordination service crashed")
            self._error = e
        finally:
            self._bound.set()

    async def _serve(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_requested = asyncio.Event()
        server = CoordinationServer(self.host, self._requested_port, self._options)
        self._port = await server.start()
        self._bound.set()
        try:
            await self._stop_requested.wait()
        finally:
            await server.stop(self.stop_grace)

    def _wait_for_readiness(self, interval: float = 0.1) -> None:
        deadline = time.monotonic() + self.startup_timeout
        if not self._bound.wait(timeout=self.startup_timeout):
            raise CoordinationStartupError(
                f"Coordination service did not bind within {self.startup_timeout}s"
            )
        if self._error is not None or self._port is None:
            raise CoordinationStartupError(
                "Coordination service terminated unexpectedly during startup"
            ) from self._error

        with CoordinationClient(self.address) as client:
            while True:
                if not self.running:
                    raise CoordinationStartupError(
                        "Coordination service thread terminated during startup"
                    ) from self._error
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    if client.ping(timeout=min(interval * 10, remaining)):
                        logger.info(
                            "Coordination service is ready on %s", self.address
                        )
                        return
                except grpc.RpcError as e:
                    logger.debug("Coordination service not ready yet: %s", e)
                time.sleep(interval)

        raise CoordinationStartupError(
            f"Coordination service did not become ready within {self.startup_timeout}s"
        )

    def stop(self, timeout: float | None = None) -> None:
        """Shut the member down and surface any error of the server thread."""
        timeout = timeout if timeout is not None else self.stop_timeout
        thread = self._server_thread
        if thread is None:
            return

        logger.info("Stopping local coordination service...")
        if thread.is_alive() and self._loop is not None and self._stop_requested:
            try:
                self._loop.call_soon_threadsafe(self._stop_requested.set)
            except RuntimeError:
                logger.debug("Coordination loop already closed")
        thread.join(timeout=timeout)

        if thread.is_alive():
            raise CoordinationServiceError(
                f"Coordination service thread did not stop within {timeout}s"
            )

        self._server_thread = None
        self._loop = None
        self._stop_requested = None
        error, self._error = self._error, None
        if error is not None:
            raise CoordinationServiceError(
                "Coordination service failed while running"
            ) from error
        logger.info("Local coordination service stopped.")


@contextmanager
def coordination_service_context_manager(
    host: str | None = None, port: int | None = None
) -> Generator[EmbeddedCoordinationService, None, None]:
    """Context manager to start/stop an embedded coordination service."""
    service = EmbeddedCoordinationService(host=host, port=port)
    service.start()
    try:
        yield service
    finally:
        service.stop()
