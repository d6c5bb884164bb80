from logger.process_logger import configure_coordination_logger
from logger.u_logger import configure_logger, get_logger

__all__ = [
    "configure_logger",
    "get_logger",
    "configure_coordination_logger",
]
