from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LifecycleState(StrEnum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class WorkerQuery(StrEnum):
    BROADCAST_VARIABLES_WITH_REFERENCES = "broadcast_variables_with_references"
    NUM_ACTIVE_CONNECTIONS = "num_active_connections"


class RuntimeContext(BaseModel):
    """
    Values resolved while a rule starts.

    Derived from ClusterSettings, never written back to them. Each startup
    step produces a new context with `model_copy(update=...)`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    web_ui_port: int | None = None
    coordination_address: str | None = None
    scheduler_address: str | None = None
    engine_kwargs: dict[str, Any] = Field(default_factory=dict)


class LeakReport(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    unreleased_broadcast_variables: int = Field(default=0, ge=0)
    active_connections: int = Field(default=0, ge=0)

    @property
    def is_clean(self) -> bool:
        return self.unreleased_broadcast_variables == 0 and self.active_connections == 0

    def __str__(self) -> str:
        return (
            f"unreleased broadcast variables: {self.unreleased_broadcast_variables}, "
            f"active connections: {self.active_connections}"
        )
