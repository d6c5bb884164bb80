from __future__ import annotations

from typing import Any

from services.cluster_harness_service.core.models import (
    ClusterSettings,
    HighAvailabilityMode,
)
from services.cluster_harness_service.core.service import ClusterRule
from services.shared.ports import AVAILABLE_PORT


class ClusterRuleBuilder:
    """
    Fluent assembly of ClusterSettings and the ClusterRule that uses them.

    Every ``with_*`` method returns the builder. Values are validated once,
    when the settings are built.

    Example:
        rule = (
            ClusterRuleBuilder()
            .with_task_managers(1)
            .with_task_slots(4)
            .with_web_ui_enabled(9091)
            .build()
        )
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._engine_options: dict[str, Any] = {}
        self._engine_config: dict[str, Any] = {}

    def with_task_managers(self, task_managers: int) -> ClusterRuleBuilder:
        self._values["task_managers"] = task_managers
        return self

    def with_task_slots(self, task_slots: int) -> ClusterRuleBuilder:
        self._values["task_slots"] = task_slots
        return self

    def with_web_ui_enabled(self, port: int = AVAILABLE_PORT) -> ClusterRuleBuilder:
        """Enable the web UI on ``port``; AVAILABLE_PORT picks a free port at start."""
        self._values["web_ui_enabled"] = True
        self._values["web_ui_port"] = port
        return self

    def with_coordination_service(self) -> ClusterRuleBuilder:
        self._values["ha_mode"] = HighAvailabilityMode.COORDINATION_SERVICE
        return self

    def with_engine_option(self, key: str, value: Any) -> ClusterRuleBuilder:
        self._engine_options[key] = value
        return self

    def with_engine_config(self, key: str, value: Any) -> ClusterRuleBuilder:
        self._engine_config[key] = value
        return self

    def build_settings(self) -> ClusterSettings:
        return ClusterSettings(
            **self._values,
            engine_options=dict(self._engine_options),
            engine_config=dict(self._engine_config),
        )

    def build(self) -> ClusterRule:
        return ClusterRule(self.build_settings())
