from __future__ import annotations

import logging
import logging.config
from logging import Logger
from typing import Callable, Optional

from logger.utils import (
    build_console_handler,
    get_log_config,
    get_logger_profile,
    start_queue_listener,
)

_logger_configured = False


def _configure_default_profile() -> None:
    """Loggers propagate to root, root feeds a queue, a listener owns the file."""
    config = get_log_config()
    config.setdefault("root", {})["handlers"] = []
    for handler in ("file", "console"):
        config.get("handlers", {}).pop(handler, None)
    logging.config.dictConfig(config)
    start_queue_listener(config)


def _configure_console_profile() -> None:
    """Stdout only, no log files. Meant for CLI sessions and CI runners."""
    config = get_log_config()
    config.setdefault("root", {})["handlers"] = []
    config.get("handlers", {}).pop("file", None)
    logging.config.dictConfig(config)

    level_name = config.get("handlers", {}).get("console", {}).get("level") or config[
        "root"
    ].get("level", "INFO")
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(build_console_handler(level))


_PROFILES: dict[str, Callable[[], None]] = {
    "default": _configure_default_profile,
    "console": _configure_console_profile,
}


def configure_logger() -> None:
    """Apply the profile named by CLUSTER_HARNESS_LOGGER_PROFILE, once per process."""
    global _logger_configured
    if _logger_configured:
        return

    # unknown profiles get the default
    _PROFILES.get(get_logger_profile(), _configure_default_profile)()
    _logger_configured = True


def get_logger(name: Optional[str] = "") -> Logger:
    """Named logger (pass __name__), root logger without a name."""
    if not _logger_configured:
        configure_logger()
    return logging.getLogger(name) if name else logging.getLogger()
