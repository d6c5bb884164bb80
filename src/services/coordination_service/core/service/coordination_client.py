from __future__ import annotations

from typing import Any

import grpc

from logger import get_logger
from services.coordination_service.core.config import get_coordination_config
from services.coordination_service.core.infrastructure import codec

logger = get_logger(__name__)


class CoordinationClient:
    """
    Synchronous client of the embedded coordination service.

    One channel per client; close it (or use the client as a context manager)
    when done.
    """

    def __init__(self, address: str, timeout: float | None = None) -> None:
        config = get_coordination_config()
        self.address = address
        self.timeout = timeout if timeout is not None else config.rpc_timeout
        logger.debug("Establishing gRPC connection to %s...", address)
        self._channel: grpc.Channel | None = grpc.insecure_channel(
            address, options=config.channel_options
        )
        self._calls = {
            method: self._channel.unary_unary(
                codec.method_path(method),
                request_serializer=codec.encode,
                response_deserializer=codec.decode,
            )
            for method in codec.METHODS
        }

    def __enter__(self) -> CoordinationClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _call(
        self, method: str, request: dict[str, Any], timeout: float | None = None
    ) -> dict[str, Any]:
        if self._channel is None:
            raise RuntimeError(f"Client for {self.address} is closed")
        return self._calls[method](
            request, timeout=timeout if timeout is not None else self.timeout
        )

    def ping(self, timeout: float | None = None) -> bool:
        return self._call(codec.PING, {}, timeout).get("status") == "ok"

    def put(self, key: str, value: Any) -> int:
        """Store ``value`` under ``key``. Returns the new version of the entry."""
        return int(self._call(codec.PUT, {"key": key, "value": value})["version"])

    def get(self, key: str) -> Any:
        """
        Return the value stored under ``key``.

        Raises:
            KeyError: if the key does not exist.
        """
        try:
            return self._call(codec.GET, {"key": key})["value"]
        except grpc.RpcError as e:
            if e.code() == grpc.StatusCode.NOT_FOUND:
                raise KeyError(key) from e
            raise

    def delete(self, key: str) -> bool:
        return bool(self._call(codec.DELETE, {"key": key})["deleted"])

    def list(self, prefix: str = "") -> list[str]:
        return list(self._call(codec.LIST, {"prefix": prefix})["keys"])

    def close(self) -> None:
        """Close the channel if it exists."""
        if self._channel is not None:
            self._channel.close()
            self._channel = None
            logger.debug("Closed gRPC channel to %s.", self.address)
