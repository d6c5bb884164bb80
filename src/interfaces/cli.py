import argparse
import sys
import time

from pydantic import ValidationError

from logger import configure_logger, get_logger
from services.cluster_harness_service import (
    AVAILABLE_PORT,
    ClusterRule,
    ClusterSettings,
    HighAvailabilityMode,
)
from services.shared.exceptions import ShutdownFailure, StartupFailure


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cluster-harness",
        description="Start a local Dask cluster and keep it running until interrupted.",
    )

    parser.add_argument(
        "--task-managers",
        type=int,
        default=1,
        help="Number of workers. Default is 1.",
    )
    parser.add_argument(
        "--task-slots",
        type=int,
        default=1,
        help="Number of threads per worker. Default is 1.",
    )
    parser.add_argument(
        "--web-ui-port",
        type=int,
        nargs="?",
        const=AVAILABLE_PORT,
        default=None,
        help="Enable the dashboard. Without a value (or with 0) a free port is picked.",
    )
    parser.add_argument(
        "--ha",
        action="store_true",
        help="Start an embedded coordination service and register the scheduler with it.",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop the cluster after this many seconds instead of waiting for Ctrl+C.",
    )
    return parser


def _wait(duration: float | None) -> None:
    deadline = None if duration is None else time.monotonic() + duration
    while deadline is None or time.monotonic() < deadline:
        time.sleep(0.2)


def cli(argv: list[str] | None = None) -> int:
    """
    Parse command-line arguments and run a cluster harness until interrupted.

    Returns:
        int: process exit code.
    """
    args = build_parser().parse_args(argv)

    configure_logger()
    logger = get_logger(__name__)
    logger.info("Cluster harness started from CLI.")

    try:
        settings = ClusterSettings(
            task_managers=args.task_managers,
            task_slots=args.task_slots,
            web_ui_enabled=args.web_ui_port is not None,
            web_ui_port=(
                args.web_ui_port if args.web_ui_port is not None else AVAILABLE_PORT
            ),
            ha_mode=(
                HighAvailabilityMode.COORDINATION_SERVICE
                if args.ha
                else HighAvailabilityMode.NONE
            ),
        )
    except ValidationError as e:
        logger.error("Invalid cluster settings: %s", e)
        return 2

    rule = ClusterRule(settings)
    try:
        rule.start()
    except StartupFailure as e:
        logger.error("Failed to start cluster: %s", e.__cause__ or e)
        return 1

    print(f"Scheduler:             {rule.scheduler_address}")
    if settings.web_ui_enabled:
        print(f"Dashboard:             http://127.0.0.1:{rule.get_web_ui_port()}/status")
    if rule.coordination_address:
        print(f"Coordination service:  {rule.coordination_address}")
    sys.stdout.flush()

    try:
        _wait(args.duration)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")

    try:
        rule.stop()
    except ShutdownFailure as e:
        logger.error("Cluster did not shut down cleanly: %s", e)
        return 1

    logger.info("Cluster harness stopped.")
    return 0


def main() -> None:
    sys.exit(cli())
