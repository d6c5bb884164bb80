from unittest.mock import MagicMock, call, patch

import pytest

from services.cluster_harness_service import (
    ClusterRule,
    ClusterSettings,
    LeakReport,
    LifecycleState,
    RuntimeContext,
)
from services.shared.exceptions import (
    HarnessError,
    PortAllocationError,
    ResourceLeakError,
    ShutdownFailure,
    StartupFailure,
    VerificationTimeoutError,
)

MODULE = "services.cluster_harness_service.core.service.lifecycle_manager"


@pytest.fixture
def calls():
    """Parent mock recording the order of calls across all collaborators."""
    return MagicMock()


@pytest.fixture
def cluster_manager(calls):
    manager = MagicMock(name="cluster_manager")
    manager.running = True
    manager.worker_handles.return_value = []
    manager.start.side_effect = lambda context: context.model_copy(
        update={"scheduler_address": "inproc://scheduler"}
    )
    calls.attach_mock(manager.start, "cluster_start")
    calls.attach_mock(manager.stop, "cluster_stop")
    return manager


@pytest.fixture
def coordination(calls):
    service = MagicMock(name="coordination")
    service.address = "127.0.0.1:2181"
    calls.attach_mock(service.start, "coordination_start")
    calls.attach_mock(service.stop, "coordination_stop")
    return service


@pytest.fixture
def environment(calls):
    environment = MagicMock(name="environment")
    calls.attach_mock(environment.register, "environment_register")
    calls.attach_mock(environment.unregister, "environment_unregister")
    return environment


@pytest.fixture
def verifier(calls):
    verifier = MagicMock(name="verifier")
    verifier.collect.return_value = LeakReport()
    calls.attach_mock(verifier.collect, "verifier_collect")
    calls.attach_mock(verifier.verify, "verifier_verify")
    return verifier


@pytest.fixture
def mock_acquire_port(calls):
    with patch(f"{MODULE}.acquire_available_port", return_value=45678) as mock_acquire:
        calls.attach_mock(mock_acquire, "acquire_port")
        yield mock_acquire


@pytest.fixture
def make_rule(cluster_manager, coordination, environment, verifier):
    def _make(settings: ClusterSettings | None = None) -> ClusterRule:
        return ClusterRule(
            settings,
            cluster_factory=lambda settings: cluster_manager,
            coordination_factory=lambda: coordination,
            environment=environment,
            verifier=verifier,
        )

    return _make


def _names(calls: MagicMock) -> list[str]:
    return [c[0] for c in calls.mock_calls]


def test_startup_order_with_all_options(make_rule, calls, mock_acquire_port):
    rule = make_rule(ClusterSettings(web_ui_enabled=True, ha_mode="coordination-service"))

    rule.start()

    assert _names(calls) == [
        "coordination_start",
        "acquire_port",
        "cluster_start",
        "environment_register",
    ]
    assert rule.state == LifecycleState.RUNNING


def test_cluster_receives_resolved_context(
    make_rule, cluster_manager, coordination, environment, mock_acquire_port
):
    rule = make_rule(ClusterSettings(web_ui_enabled=True, ha_mode="coordination-service"))

    rule.start()

    (context,) = cluster_manager.start.call_args.args
    assert context == RuntimeContext(
        web_ui_port=45678, coordination_address="127.0.0.1:2181"
    )
    environment.register.assert_called_once_with(cluster_manager.cluster)
    assert rule.coordination_address == "127.0.0.1:2181"
    assert rule.scheduler_address == "inproc://scheduler"
    assert rule.settings.web_ui_port == 0


def test_minimal_startup_skips_optional_steps(make_rule, calls, mock_acquire_port):
    make_rule(ClusterSettings()).start()

    assert _names(calls) == ["cluster_start", "environment_register"]


def test_web_ui_port_disabled(make_rule):
    rule = make_rule(ClusterSettings())

    assert rule.get_web_ui_port() == -1
    rule.start()
    assert rule.get_web_ui_port() == -1


def test_web_ui_port_allocated(make_rule, mock_acquire_port):
    rule = make_rule(ClusterSettings(web_ui_enabled=True))
    assert rule.get_web_ui_port() == 0

    rule.start()

    assert rule.get_web_ui_port() == 45678
    mock_acquire_port.assert_called_once_with("127.0.0.1")


def test_explicit_web_ui_port_is_kept(make_rule, mock_acquire_port):
    rule = make_rule(ClusterSettings(web_ui_enabled=True, web_ui_port=9091))

    rule.start()

    assert rule.get_web_ui_port() == 9091
    mock_acquire_port.assert_not_called()


def test_teardown_order(make_rule, calls):
    rule = make_rule(ClusterSettings(ha_mode="coordination-service"))
    rule.start()
    calls.reset_mock()

    rule.stop()

    assert _names(calls) == [
        "verifier_collect",
        "cluster_stop",
        "verifier_verify",
        "coordination_stop",
        "environment_unregister",
    ]
    assert rule.state == LifecycleState.STOPPED


def test_collect_skips_workers_of_stopped_cluster(make_rule, cluster_manager, verifier):
    rule = make_rule()
    rule.start()
    cluster_manager.running = False

    rule.stop()

    verifier.collect.assert_called_once_with([], False)


def test_stop_twice_is_noop(make_rule, calls):
    rule = make_rule(ClusterSettings(ha_mode="coordination-service"))
    rule.start()
    rule.stop()
    calls.reset_mock()

    rule.stop()
    rule.after()

    assert calls.mock_calls == []


def test_stop_before_start_is_noop(make_rule, calls):
    make_rule().stop()

    assert calls.mock_calls == []


def test_leak_is_reported_after_full_teardown(
    make_rule, coordination, environment, verifier
):
    report = LeakReport(unreleased_broadcast_variables=1)
    verifier.collect.return_value = report
    verifier.verify.side_effect = ResourceLeakError(
        "Not all broadcast variables were released.", report
    )
    rule = make_rule(ClusterSettings(ha_mode="coordination-service"))
    rule.start()

    with pytest.raises(ShutdownFailure) as exc_info:
        rule.stop()

    assert isinstance(exc_info.value.cause, ResourceLeakError)
    assert exc_info.value.__cause__ is exc_info.value.cause
    assert exc_info.value.leak_report.unreleased_broadcast_variables == 1
    coordination.stop.assert_called_once()
    environment.unregister.assert_called_once()
    assert rule.state == LifecycleState.STOPPED


def test_first_teardown_error_wins(make_rule, cluster_manager, coordination, environment):
    cluster_error = RuntimeError("cluster stop failed")
    cluster_manager.stop.side_effect = cluster_error
    coordination.stop.side_effect = RuntimeError("coordination stop failed")
    rule = make_rule(ClusterSettings(ha_mode="coordination-service"))
    rule.start()

    with pytest.raises(ShutdownFailure) as exc_info:
        rule.stop()

    assert exc_info.value.cause is cluster_error
    environment.unregister.assert_called_once()
    assert rule.state == LifecycleState.STOPPED


def test_accounting_timeout_still_stops_cluster(make_rule, cluster_manager, verifier):
    timeout = VerificationTimeoutError("no answer", pending=["w1"])
    verifier.collect.side_effect = timeout
    rule = make_rule()
    rule.start()

    with pytest.raises(ShutdownFailure) as exc_info:
        rule.stop()

    assert exc_info.value.cause is timeout
    cluster_manager.stop.assert_called_once()
    verifier.verify.assert_not_called()


def test_startup_failure_releases_acquired_resources(
    make_rule, cluster_manager, coordination, environment
):
    boom = OSError("address in use")
    cluster_manager.start.side_effect = boom
    rule = make_rule(ClusterSettings(ha_mode="coordination-service"))

    with pytest.raises(StartupFailure) as exc_info:
        rule.start()

    assert exc_info.value.__cause__ is boom
    cluster_manager.stop.assert_called_once()
    coordination.stop.assert_called_once()
    environment.unregister.assert_called_once()
    assert rule.state == LifecycleState.FAILED


def test_startup_failure_cleanup_errors_are_not_raised(
    make_rule, cluster_manager, coordination
):
    cluster_manager.start.side_effect = OSError("address in use")
    coordination.stop.side_effect = RuntimeError("coordination stop failed")
    rule = make_rule(ClusterSettings(ha_mode="coordination-service"))

    with pytest.raises(StartupFailure) as exc_info:
        rule.start()

    assert isinstance(exc_info.value.__cause__, OSError)


def test_coordination_failure_prevents_cluster_start(make_rule, cluster_manager, coordination):
    coordination.start.side_effect = StartupFailure("did not become ready")
    rule = make_rule(ClusterSettings(ha_mode="coordination-service"))

    with pytest.raises(StartupFailure):
        rule.start()

    cluster_manager.start.assert_not_called()


def test_port_allocation_failure(make_rule, cluster_manager):
    rule = make_rule(ClusterSettings(web_ui_enabled=True))
    with patch(f"{MODULE}.acquire_available_port", side_effect=PortAllocationError("x")):
        with pytest.raises(StartupFailure) as exc_info:
            rule.start()

    assert isinstance(exc_info.value.__cause__, PortAllocationError)
    cluster_manager.start.assert_not_called()


def test_start_while_running_is_rejected(make_rule):
    rule = make_rule()
    rule.start()

    with pytest.raises(HarnessError):
        rule.start()


def test_rule_can_be_restarted(make_rule, cluster_manager):
    rule = make_rule()
    rule.start()
    rule.stop()

    rule.start()

    assert rule.state == LifecycleState.RUNNING
    assert cluster_manager.start.call_count == 2


def test_context_manager(make_rule, calls):
    with make_rule() as rule:
        assert rule.state == LifecycleState.RUNNING

    assert rule.state == LifecycleState.STOPPED
    assert calls.mock_calls[-1] == call.environment_unregister()


def test_before_after(make_rule):
    rule = make_rule()

    rule.before()
    assert rule.state == LifecycleState.RUNNING
    rule.after()
    assert rule.state == LifecycleState.STOPPED


def test_web_ui_port_reported_by_cluster_wins(make_rule, cluster_manager, mock_acquire_port):
    cluster_manager.start.side_effect = lambda context: context.model_copy(
        update={"web_ui_port": 50001}
    )
    rule = make_rule(ClusterSettings(web_ui_enabled=True))

    rule.start()

    assert rule.get_web_ui_port() == 50001
