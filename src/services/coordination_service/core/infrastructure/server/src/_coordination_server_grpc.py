from typing import Any

import grpc
from grpc import aio

from logger import get_logger
from logger.process_logger import COORDINATION_LOGGER_NAME
from services.coordination_service.core.infrastructure import codec
from services.shared.exceptions import CoordinationStartupError

logger = get_logger(COORDINATION_LOGGER_NAME)


class CoordinationHandler:
    """
    In-memory metadata store of one ensemble member.

    Every entry carries a version that starts at 1 and is bumped on each
    overwrite. All handlers run on the server's event loop, so no locking is
    needed.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self._versions: dict[str, int] = {}

    async def Ping(self, request: dict[str, Any], context) -> dict[str, Any]:
        return {"status": "ok", "entries": len(self._entries)}

    async def Put(self, request: dict[str, Any], context) -> dict[str, Any]:
        key = await _require_key(request, context)
        self._entries[key] = request.get("value")
        self._versions[key] = self._versions.get(key, 0) + 1
        logger.debug("Stored key '%s' (version %d)", key, self._versions[key])
        return {"key": key, "version": self._versions[key]}

    async def Get(self, request: dict[str, Any], context) -> dict[str, Any]:
        key = await _require_key(request, context)
        if key not in self._entries:
            await context.abort(grpc.StatusCode.NOT_FOUND, f"No entry for key '{key}'")
        return {
            "key": key,
            "value": self._entries[key],
            "version": self._versions[key],
        }

    async def Delete(self, request: dict[str, Any], context) -> dict[str, Any]:
        key = await _require_key(request, context)
        deleted = key in self._entries
        self._entries.pop(key, None)
        self._versions.pop(key, None)
        if deleted:
            logger.debug("Deleted key '%s'", key)
        return {"key": key, "deleted": deleted}

    async def List(self, request: dict[str, Any], context) -> dict[str, Any]:
        prefix = str(request.get("prefix", ""))
        return {"keys": sorted(k for k in self._entries if k.startswith(prefix))}


async def _require_key(request: dict[str, Any], context) -> str:
    key = request.get("key")
    if not isinstance(key, str) or not key:
        await context.abort(
            grpc.StatusCode.INVALID_ARGUMENT, "Request must carry a non-empty 'key'"
        )
    return key


def build_generic_handler(handler: CoordinationHandler) -> grpc.GenericRpcHandler:
    return grpc.method_handlers_generic_handler(
        codec.SERVICE_NAME,
        {
            method: grpc.unary_unary_rpc_method_handler(
                getattr(handler, method),
                request_deserializer=codec.decode,
                response_serializer=codec.encode,
            )
            for method in codec.METHODS
        },
    )


class CoordinationServer:
    """Async gRPC server hosting a single coordination ensemble member."""

    def __init__(
        self,
        host: str,
        port: int,
        options: list[tuple[str, int]] | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self._options = options or []
        self._server: aio.Server | None = None

    async def start(self) -> int:
        """Bind and start the server. Returns the port actually bound."""
        logger.debug("gRPC server options: %s", self._options)
        self._server = aio.server(options=self._options)
        self._server.add_generic_rpc_handlers(
            (build_generic_handler(CoordinationHandler()),)
        )

        bound_port = self._server.add_insecure_port(f"{self.host}:{self.port}")
        if bound_port == 0:
            raise CoordinationStartupError(
                f"Could not bind coordination service to {self.host}:{self.port}"
            )

        await self._server.start()
        self.port = bound_port
        logger.info("Coordination service listening on %s:%d", self.host, bound_port)
        return bound_port

    async def stop(self, grace: float | None = None) -> None:
        if self._server is None:
            return
        logger.info("Stopping coordination service on %s:%d...", self.host, self.port)
        await self._server.stop(grace)
        self._server = None
        logger.info("Coordination service stopped.")
