import logging
from unittest.mock import MagicMock, patch

import dask
import pytest
from distributed.core import Status

from services.cluster_harness_service.core.config import HarnessServiceConfig
from services.cluster_harness_service.core.models import ClusterSettings, RuntimeContext
from services.cluster_harness_service.core.service import DaskClusterManager
from services.cluster_harness_service.core.service.coordination_plugin import (
    CoordinationRegistrationPlugin,
)
from services.shared.exceptions import PortAllocationError

MODULE = "services.cluster_harness_service.core.service.dask_cluster_manager"


@pytest.fixture
def mock_local_cluster():
    with patch(f"{MODULE}.LocalCluster") as mock_cls:
        mock_cls.return_value.scheduler_address = "inproc://127.0.0.1/1/1"
        yield mock_cls


@pytest.fixture
def config():
    return HarnessServiceConfig(release_grace_period=0.25)


def test_engine_kwargs_follow_settings(config):
    manager = DaskClusterManager(ClusterSettings(task_managers=2, task_slots=4), config)

    kwargs = manager.build_engine_kwargs(RuntimeContext())

    assert kwargs["n_workers"] == 2
    assert kwargs["threads_per_worker"] == 4
    assert kwargs["processes"] is False
    assert kwargs["dashboard_address"] is None
    assert kwargs["silence_logs"] == logging.WARNING
    assert "scheduler_kwargs" not in kwargs


def test_engine_kwargs_use_resolved_web_ui_port(config):
    manager = DaskClusterManager(ClusterSettings(web_ui_enabled=True), config)

    kwargs = manager.build_engine_kwargs(RuntimeContext(web_ui_port=8787))

    assert kwargs["dashboard_address"] == "127.0.0.1:8787"


def test_engine_kwargs_register_coordination_plugin(config):
    manager = DaskClusterManager(ClusterSettings(ha_mode="coordination-service"), config)

    kwargs = manager.build_engine_kwargs(
        RuntimeContext(coordination_address="127.0.0.1:2181")
    )

    (plugin,) = kwargs["scheduler_kwargs"]["plugins"]
    assert isinstance(plugin, CoordinationRegistrationPlugin)
    assert plugin.coordination_address == "127.0.0.1:2181"


def test_engine_options_are_forwarded(config):
    settings = ClusterSettings(engine_options={"memory_limit": "1GiB", "silence_logs": False})

    kwargs = DaskClusterManager(settings, config).build_engine_kwargs(RuntimeContext())

    assert kwargs["memory_limit"] == "1GiB"
    assert kwargs["silence_logs"] is False


def test_start_returns_completed_context(mock_local_cluster, config):
    mock_local_cluster.return_value.scheduler.http_server.port = 8787
    manager = DaskClusterManager(ClusterSettings(task_slots=4), config)
    context = RuntimeContext(web_ui_port=8787)

    result = manager.start(context)

    mock_local_cluster.assert_called_once()
    assert mock_local_cluster.call_args.kwargs["threads_per_worker"] == 4
    assert result.scheduler_address == "inproc://127.0.0.1/1/1"
    assert result.web_ui_port == 8787
    assert result.engine_kwargs["threads_per_worker"] == 4
    assert context.scheduler_address is None


def test_start_twice_is_rejected(mock_local_cluster, config):
    manager = DaskClusterManager(ClusterSettings(), config)
    manager.start(RuntimeContext())

    with pytest.raises(RuntimeError):
        manager.start(RuntimeContext())


def test_engine_config_applies_while_running(mock_local_cluster, config):
    key = "harness-test.some-option"
    manager = DaskClusterManager(ClusterSettings(engine_config={key: 42}), config)

    manager.start(RuntimeContext())
    assert dask.config.get(key) == 42

    manager.stop()
    assert dask.config.get(key, default=None) is None
    mock_local_cluster.return_value.close.assert_called_once()


def test_engine_config_restored_when_start_fails(mock_local_cluster, config):
    key = "harness-test.other-option"
    mock_local_cluster.side_effect = OSError("address in use")
    manager = DaskClusterManager(ClusterSettings(engine_config={key: 1}), config)

    with pytest.raises(OSError):
        manager.start(RuntimeContext())

    assert dask.config.get(key, default=None) is None
    assert manager.cluster is None


def test_worker_handles(mock_local_cluster, config):
    worker = MagicMock(address="inproc://worker")
    mock_local_cluster.return_value.workers = {0: worker}
    manager = DaskClusterManager(ClusterSettings(), config)
    assert manager.worker_handles() == []

    manager.start(RuntimeContext())
    (handle,) = manager.worker_handles()

    assert handle.name == "inproc://worker"
    assert handle.release_grace_period == 0.25


def test_running_follows_cluster_status(mock_local_cluster, config):
    manager = DaskClusterManager(ClusterSettings(), config)
    assert manager.running is False

    manager.start(RuntimeContext())
    mock_local_cluster.return_value.status = Status.running
    assert manager.running is True

    mock_local_cluster.return_value.status = Status.closed
    assert manager.running is False


def test_stop_without_start_is_noop(config):
    DaskClusterManager(ClusterSettings(), config).stop()


def test_auto_web_ui_port_follows_bound_port(mock_local_cluster, config):
    mock_local_cluster.return_value.scheduler.http_server.port = 50001
    manager = DaskClusterManager(ClusterSettings(web_ui_enabled=True), config)

    result = manager.start(RuntimeContext(web_ui_port=45678))

    assert result.web_ui_port == 50001
    assert manager.cluster is not None


def test_explicit_web_ui_port_taken_stops_cluster(mock_local_cluster, config):
    key = "harness-test.port-option"
    mock_local_cluster.return_value.scheduler.http_server.port = 50001
    settings = ClusterSettings(
        web_ui_enabled=True, web_ui_port=9091, engine_config={key: 1}
    )
    manager = DaskClusterManager(settings, config)

    with pytest.raises(PortAllocationError, match="9091"):
        manager.start(RuntimeContext(web_ui_port=9091))

    mock_local_cluster.return_value.close.assert_called_once()
    assert manager.cluster is None
    assert dask.config.get(key, default=None) is None
