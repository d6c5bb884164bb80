from __future__ import annotations

import atexit
import copy
import logging
import os
import sys
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import SimpleQueue
from typing import Any

LOGGER_PROFILE_ENV = "CLUSTER_HARNESS_LOGGER_PROFILE"
COORDINATION_THREAD_NAME = "coordination"

DETAILED_FORMAT = (
    "%(asctime)s.%(msecs)03d %(module)s:%(lineno)d %(levelname)s - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_FALLBACK_LOG_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "detailed": {"format": DETAILED_FORMAT, "datefmt": DATE_FORMAT},
        "simple": {
            "format": "%(asctime)s.%(msecs)03d - %(module)-30s %(lineno)-4d - %(levelname)-8s - %(message)s",
            "datefmt": DATE_FORMAT,
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "simple",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {},
    "root": {"level": "INFO", "handlers": ["console"]},
}

_listener: QueueListener | None = None


def find_pyproject_toml(start: Path | None = None) -> Path | None:
    """
    Return the pyproject.toml that holds the logging tables.

    The working directory wins; otherwise the parents of ``start`` (default:
    this file) are searched upwards.
    """
    try:
        in_cwd = Path.cwd() / "pyproject.toml"
        if in_cwd.exists():
            return in_cwd.resolve()
    except OSError:
        pass

    origin = start or Path(__file__).resolve()
    for directory in (origin, *origin.parents):
        candidate = directory / "pyproject.toml"
        if candidate.exists():
            return candidate.resolve()
    return None


def _read_logging_table(name: str) -> dict[str, Any]:
    """Contents of ``[logging.<name>]``, empty when there is no pyproject.toml."""
    path = find_pyproject_toml()
    if path is None:
        return {}

    import tomli

    with open(path, "rb") as f:
        return dict(tomli.load(f).get("logging", {}).get(name, {}))


def get_logger_profile() -> str:
    """Profile name from the environment: "default" (queue + log file) or "console"."""
    return os.environ.get(LOGGER_PROFILE_ENV, "default")


def get_log_to_console_value() -> bool:
    return bool(_read_logging_table("output").get("log_to_console", False))


def log_to_datetime_log_file() -> bool:
    """True when every run should write to its own timestamped log file."""
    return bool(_read_logging_table("output").get("datetime_log_file", False))


def get_log_config() -> dict[str, Any]:
    """
    dictConfig schema from ``[logging.config]``.

    Falls back to a console-only configuration when the table is missing or
    cannot be parsed.
    """
    try:
        config = _read_logging_table("config")
    except Exception as e:
        sys.stderr.write(f"Warning: could not read [logging.config]: {e}\n")
        config = {}
    return config or copy.deepcopy(_FALLBACK_LOG_CONFIG)


def get_log_dir() -> Path:
    pyproject = find_pyproject_toml()
    root = pyproject.parent if pyproject is not None else Path(__file__).resolve().parents[2]
    return root / "log"


def build_formatter(config: dict[str, Any], name: str | None) -> logging.Formatter:
    spec = config.get("formatters", {}).get(name, {}) if name else {}
    return logging.Formatter(
        fmt=spec.get("format") or DETAILED_FORMAT,
        datefmt=spec.get("datefmt") or DATE_FORMAT,
    )


def build_console_handler(level: int = logging.INFO) -> logging.Handler:
    config = get_log_config()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(build_formatter(config, "simple"))
    return handler


def _log_file_path() -> Path | None:
    running_tests = "pytest" in sys.modules
    if running_tests:
        file_name = "pytest_log.log"
    elif log_to_datetime_log_file():
        file_name = f"{datetime.now():%Y-%m-%d_%H-%M-%S}_harness_log.log"
    else:
        file_name = "harness_log.log"

    log_dir = get_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        path = log_dir / file_name
        path.touch(exist_ok=True)
        return path
    except OSError as e:
        sys.stderr.write(f"Warning: cannot write log file in {log_dir}: {e}\n")
        return None


class _CoordinationErrorsOnly(logging.Filter):
    """The coordination thread logs to its own file; only its errors reach the main log."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "threadName", "") == COORDINATION_THREAD_NAME:
            return record.levelno >= logging.ERROR
        return True


def start_queue_listener(config: dict[str, Any]) -> None:
    """
    Route every record through a queue to handlers owned by a listener thread.

    Root gets a single QueueHandler; the listener writes to the log file and,
    outside pytest and when enabled in ``[logging.output]``, to stdout.
    """
    global _listener
    if _listener is not None:
        return

    handlers: list[logging.Handler] = []
    if get_log_to_console_value() and "pytest" not in sys.modules:
        handlers.append(build_console_handler())

    path = _log_file_path()
    if path is not None:
        file_spec = config.get("handlers", {}).get("file", {})
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(file_spec.get("level", logging.INFO))
        file_handler.setFormatter(build_formatter(config, file_spec.get("formatter")))
        file_handler.addFilter(_CoordinationErrorsOnly())
        handlers.append(file_handler)

    queue: SimpleQueue = SimpleQueue()
    _listener = QueueListener(queue, *handlers, respect_handler_level=True)
    _listener.start()
    atexit.register(stop_queue_listener)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(QueueHandler(queue))
    root.setLevel(config.get("root", {}).get("level", "INFO"))


def stop_queue_listener() -> None:
    global _listener
    listener, _listener = _listener, None
    if listener is not None:
        listener.stop()
