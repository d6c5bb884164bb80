import socket

from logger import get_logger
from services.shared.exceptions import PortAllocationError

logger = get_logger(__name__)

# Reserved web UI port meaning "let the harness pick a free port".
AVAILABLE_PORT = 0
# Returned by the rule when the web UI is disabled.
WEB_UI_DISABLED = -1


def acquire_available_port(host: str = "127.0.0.1") -> int:
    """
    Return a port that was free when the function was called.

    The socket is bound to port 0, the OS-assigned port is read back and the
    socket is released before returning. Another process may grab the port
    before the caller binds it; callers accept that race.

    Args:
        host: Interface to bind against.

    Returns:
        int: the port number.

    Raises:
        PortAllocationError: if no socket could be bound.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            port = sock.getsockname()[1]
    except OSError as e:
        msg = "Exception while finding a random port for the web UI."
        logger.error("%s %s", msg, e)
        raise PortAllocationError(msg) from e

    logger.info("Setting web UI port to random port. Port is %d.", port)
    return port
