from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoordinationServiceConfig(BaseSettings):
    host: str = Field(
        default="127.0.0.1",
        description="Interface the embedded coordination service binds to",
    )
    port: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="Port of the embedded coordination service (0: OS-assigned)",
    )
    startup_timeout: float = Field(
        default=10.0, gt=0, description="Timeout in seconds for service readiness"
    )
    stop_grace: float = Field(
        default=1.0,
        ge=0,
        description="Grace period in seconds given to in-flight calls on stop",
    )
    stop_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for the server thread to exit on stop",
    )
    rpc_timeout: float = Field(
        default=5.0, gt=0, description="Deadline in seconds for client calls"
    )
    max_message_size: int = Field(
        default=4 * 1024 * 1024,
        description="Maximum gRPC message size in bytes (default: 4MB)",
    )

    model_config = SettingsConfigDict(
        env_prefix="COORDINATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def channel_options(self) -> list[tuple[str, int]]:
        return [
            ("grpc.max_send_message_length", self.max_message_size),
            ("grpc.max_receive_message_length", self.max_message_size),
        ]


@lru_cache
def get_coordination_config() -> CoordinationServiceConfig:
    """
    Factory function to get the singleton configuration instance.
    Uses @lru_cache to ensure only one instance is created per process.
    """
    return CoordinationServiceConfig()
