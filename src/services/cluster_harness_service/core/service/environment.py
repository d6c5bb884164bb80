from __future__ import annotations

from distributed import Client

from logger import get_logger
from services.cluster_harness_service.core.config import get_harness_config

logger = get_logger(__name__)


class ExecutionEnvironment:
    """
    Makes a cluster the implicit execution target of the process.

    While registered, ``dask.compute``, collections and ``distributed.get_client``
    all run against the cluster without being handed a client.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else get_harness_config().client_timeout
        self._client: Client | None = None

    @property
    def client(self) -> Client | None:
        return self._client

    @property
    def registered(self) -> bool:
        return self._client is not None

    def register(self, cluster) -> Client:
        if self._client is not None:
            raise RuntimeError("An execution environment is already registered")
        self._client = Client(cluster, set_as_default=True, timeout=self.timeout)
        logger.debug("Registered default client %s", self._client)
        return self._client

    def unregister(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.debug("Unregistered default client")
