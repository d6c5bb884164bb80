import pytest

from interfaces.pytest_plugin import (  # noqa: F401
    cluster_rule,
    cluster_rule_factory,
    cluster_settings,
    module_cluster_rule,
    module_cluster_settings,
)
from services.cluster_harness_service.core.config import get_harness_config
from services.coordination_service.core.config import get_coordination_config


@pytest.fixture(autouse=True)
def clear_config_caches():
    get_harness_config.cache_clear()
    get_coordination_config.cache_clear()
    yield
    get_harness_config.cache_clear()
    get_coordination_config.cache_clear()
