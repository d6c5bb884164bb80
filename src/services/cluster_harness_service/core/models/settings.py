from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.shared.ports import AVAILABLE_PORT

# LocalCluster arguments the harness sets itself.
RESERVED_ENGINE_OPTIONS = frozenset(
    {
        "n_workers",
        "threads_per_worker",
        "processes",
        "dashboard_address",
        "asynchronous",
        "scheduler_kwargs",
    }
)


class HighAvailabilityMode(StrEnum):
    NONE = "none"
    COORDINATION_SERVICE = "coordination-service"


class ClusterSettings(BaseModel):
    """
    Immutable description of the cluster a rule boots.

    Attributes:
        task_managers: number of workers.
        task_slots: threads per worker.
        web_ui_enabled: start the engine dashboard.
        web_ui_port: dashboard port, AVAILABLE_PORT to let the harness pick one.
        ha_mode: start an embedded coordination service before the cluster.
        engine_options: extra LocalCluster keyword arguments, forwarded verbatim.
        engine_config: dask configuration applied while the cluster runs.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    task_managers: int = Field(default=1, ge=1)
    task_slots: int = Field(default=1, ge=1)
    web_ui_enabled: bool = False
    web_ui_port: int = Field(default=AVAILABLE_PORT, ge=0, le=65535)
    ha_mode: HighAvailabilityMode = HighAvailabilityMode.NONE
    engine_options: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    engine_config: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("engine_options")
    @classmethod
    def _reject_reserved_options(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        reserved = sorted(RESERVED_ENGINE_OPTIONS.intersection(value))
        if reserved:
            raise ValueError(
                f"Engine options {reserved} are managed by the harness, "
                "use the dedicated settings instead"
            )
        return MappingProxyType(dict(value))

    @field_validator("engine_config")
    @classmethod
    def _freeze_engine_config(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @property
    def coordination_service_enabled(self) -> bool:
        return self.ha_mode == HighAvailabilityMode.COORDINATION_SERVICE

    @property
    def auto_web_ui_port(self) -> bool:
        return self.web_ui_enabled and self.web_ui_port == AVAILABLE_PORT
