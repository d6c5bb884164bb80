from services.coordination_service.core.service import (
    CoordinationClient,
    EmbeddedCoordinationService,
    coordination_service_context_manager,
)

__all__ = [
    "CoordinationClient",
    "EmbeddedCoordinationService",
    "coordination_service_context_manager",
]
