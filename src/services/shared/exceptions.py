from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from services.cluster_harness_service.core.models import LeakReport


class HarnessError(Exception):
    """Base class for every error raised by the cluster harness."""


class StartupFailure(HarnessError):
    """The coordination service or the cluster could not be started."""


class PortAllocationError(StartupFailure):
    """No ephemeral port could be acquired for the web UI."""


class CoordinationStartupError(StartupFailure):
    """The embedded coordination service did not become ready."""


class CoordinationServiceError(HarnessError):
    """The embedded coordination service failed while running or stopping."""


class ShutdownFailure(HarnessError):
    """
    The stop sequence failed.

    Wraps the first error raised while tearing the cluster down, which is
    also available as ``__cause__``.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        if cause is not None:
            message = f"{message} Cause: {cause}"
        super().__init__(message)
        self.cause = cause

    @property
    def leak_report(self) -> LeakReport | None:
        return getattr(self.cause, "report", None)


class ResourceLeakError(ShutdownFailure):
    """Workers still held broadcast variables or network connections at shutdown."""

    def __init__(self, message: str, report: LeakReport) -> None:
        super().__init__(f"{message} ({report})")
        self.report = report


class VerificationTimeoutError(ShutdownFailure):
    """A worker did not answer a shutdown accounting query in time."""

    def __init__(self, message: str, pending: list[str] | None = None) -> None:
        super().__init__(message)
        self.pending = list(pending or [])
