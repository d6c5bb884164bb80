from services.shared.exceptions import (
    CoordinationServiceError,
    CoordinationStartupError,
    HarnessError,
    PortAllocationError,
    ResourceLeakError,
    ShutdownFailure,
    StartupFailure,
    VerificationTimeoutError,
)
from services.shared.ports import AVAILABLE_PORT, WEB_UI_DISABLED, acquire_available_port

__all__ = [
    "AVAILABLE_PORT",
    "WEB_UI_DISABLED",
    "acquire_available_port",
    "HarnessError",
    "StartupFailure",
    "PortAllocationError",
    "CoordinationStartupError",
    "CoordinationServiceError",
    "ShutdownFailure",
    "ResourceLeakError",
    "VerificationTimeoutError",
]
