from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarnessServiceConfig(BaseSettings):
    shutdown_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for each batch of worker accounting replies",
    )
    release_grace_period: float = Field(
        default=0.5,
        ge=0,
        description="Seconds a worker waits for asynchronous releases before answering",
    )
    client_timeout: float = Field(
        default=30.0, gt=0, description="Connection timeout of the default client"
    )
    bind_host: str = Field(
        default="127.0.0.1", description="Interface the web UI and ports bind to"
    )
    silence_engine_logs: str = Field(
        default="WARNING",
        description="Level applied to the engine's own loggers while it runs",
    )

    model_config = SettingsConfigDict(
        env_prefix="CLUSTER_HARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


@lru_cache
def get_harness_config() -> HarnessServiceConfig:
    """
    Factory function to get the singleton configuration instance.
    Uses @lru_cache to ensure only one instance is created per process.
    """
    return HarnessServiceConfig()
