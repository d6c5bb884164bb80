from services.coordination_service.core.service.coordination_client import (
    CoordinationClient,
)
from services.coordination_service.core.service.coordination_service import (
    EmbeddedCoordinationService,
    coordination_service_context_manager,
)

__all__ = [
    "CoordinationClient",
    "EmbeddedCoordinationService",
    "coordination_service_context_manager",
]
