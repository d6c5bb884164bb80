from services.cluster_harness_service.core.models import LeakReport
from services.shared.exceptions import (
    CoordinationStartupError,
    HarnessError,
    PortAllocationError,
    ResourceLeakError,
    ShutdownFailure,
    StartupFailure,
    VerificationTimeoutError,
)


def test_hierarchy():
    assert issubclass(StartupFailure, HarnessError)
    assert issubclass(ShutdownFailure, HarnessError)
    assert issubclass(PortAllocationError, StartupFailure)
    assert issubclass(CoordinationStartupError, StartupFailure)
    assert issubclass(ResourceLeakError, ShutdownFailure)
    assert issubclass(VerificationTimeoutError, ShutdownFailure)


def test_shutdown_failure_names_cause():
    cause = RuntimeError("worker gone")

    error = ShutdownFailure("Exception while stopping local cluster.", cause=cause)

    assert error.cause is cause
    assert "Exception while stopping local cluster." in str(error)
    assert "worker gone" in str(error)
    assert error.leak_report is None


def test_shutdown_failure_exposes_leak_report_of_cause():
    report = LeakReport(unreleased_broadcast_variables=2)
    cause = ResourceLeakError("Not all broadcast variables were released.", report)

    error = ShutdownFailure("Exception while stopping local cluster.", cause=cause)

    assert error.leak_report is report
    assert "unreleased broadcast variables: 2" in str(cause)


def test_verification_timeout_keeps_pending_workers():
    error = VerificationTimeoutError("no answer", pending=["tcp://w1", "tcp://w2"])

    assert error.pending == ["tcp://w1", "tcp://w2"]
    assert VerificationTimeoutError("no answer").pending == []
