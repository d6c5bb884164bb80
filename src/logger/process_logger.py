import logging
import sys
from pathlib import Path

from logger.utils import COORDINATION_THREAD_NAME, build_formatter, get_log_dir

COORDINATION_LOGGER_NAME = "threading-coordination"


class _ThreadNameFilter(logging.Filter):
    """Pass records emitted by one thread or its ``<name>:<suffix>`` helpers."""

    def __init__(self, thread_name: str) -> None:
        super().__init__()
        self._thread_name = thread_name

    def filter(self, record: logging.LogRecord) -> bool:
        name = getattr(record, "threadName", "")
        return name == self._thread_name or name.startswith(f"{self._thread_name}:")


def _has_file_handler(target: logging.Logger, path: Path) -> bool:
    return any(
        isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve() == path
        for h in target.handlers
    )


def configure_coordination_logger() -> Path:
    """
    Send the coordination server thread's records to ``log/coordination.log``.

    Under pytest nothing is attached and the shared ``log/pytest_log.log`` is
    returned, since the queue listener already writes everything there.
    Calling this more than once attaches a single handler.
    """
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    if "pytest" in sys.modules:
        return log_dir / "pytest_log.log"

    path = (log_dir / "coordination.log").resolve()
    target = logging.getLogger(COORDINATION_LOGGER_NAME)
    target.setLevel(logging.DEBUG)
    if not _has_file_handler(target, path):
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(build_formatter({}, None))
        handler.addFilter(_ThreadNameFilter(COORDINATION_THREAD_NAME))
        target.addHandler(handler)
    return path
