"""Image clone controller entry point.

Usage:
    image-clone-controller --backup-registry quay.io/my_backup [options]
    image-clone-controller --version
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from image_clone import __version__
from image_clone.config import Settings, load_settings
from image_clone.controller import Controller
from image_clone.leader import run_with_leader_election
from image_clone.reconciler import Reconciler
from image_clone.registry import CraneRegistry
from image_clone.store import KubernetesObjectStore, load_kube_config

logger = logging.getLogger("image_clone")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-clone-controller",
        description="Mirror workload images into a backup registry and point workloads at the copies.",
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--config", type=Path, help="YAML file with settings")
    parser.add_argument(
        "--ignore-namespace",
        dest="ignore_namespaces",
        action="append",
        metavar="NAMESPACE",
        help="Namespace to ignore. Repeatable. Default: kube-system",
    )
    parser.add_argument(
        "--backup-registry", help="Backup registry to use (i.e. quay.io/my_favorite_registry)"
    )
    parser.add_argument("--backup-registry-user", help="Backup registry user")
    parser.add_argument("--backup-registry-password", help="Backup registry password")
    parser.add_argument(
        "--leader-election-id",
        help="Leader election ID (config map with this name will be created)",
    )
    parser.add_argument(
        "--leader-election-namespace",
        help="Namespace in which the leader election config map will be created",
    )
    parser.add_argument("--workers", type=int, help="Number of concurrent reconcile workers")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    # The kubernetes client is chatty at DEBUG
    logging.getLogger("kubernetes").setLevel(logging.INFO)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "backup_registry": args.backup_registry,
        "backup_registry_user": args.backup_registry_user,
        "backup_registry_password": args.backup_registry_password,
        "ignore_namespaces": set(args.ignore_namespaces) if args.ignore_namespaces else None,
        "leader_election_id": args.leader_election_id,
        "leader_election_namespace": args.leader_election_namespace,
        "workers": args.workers,
    }


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle)


def build_controller(settings: Settings) -> Controller:
    """Wire the reconciler and controller against the cluster and crane."""
    registry = CraneRegistry()
    registry.ensure_available()
    load_kube_config()
    store = KubernetesObjectStore()
    reconciler = Reconciler(settings, store, registry)
    return Controller(settings, reconciler, apps_api=store.apps)


def run(argv: Optional[list[str]] = None) -> int:
    """Run the controller and return an exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"image-clone-controller {__version__}")
        return 0

    setup_logging(args.verbose)

    try:
        settings = load_settings(_overrides(args), args.config)
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(p) for p in error["loc"]) or "settings"
            logger.error(f"Invalid configuration: {field}: {error['msg']}")
        parser.print_usage(sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Could not load configuration: {e}")
        return 1

    logger.info(f"Namespaces to ignore: {', '.join(sorted(settings.ignore_namespaces))}")
    logger.info(f"Using backup registry: {settings.backup_registry}")

    try:
        controller = build_controller(settings)
    except Exception as e:
        logger.error(f"Unable to set up controller: {e}")
        return 1

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    try:
        if settings.leader_election_enabled:
            run_with_leader_election(settings, controller.run, stop_event)
        else:
            controller.run(stop_event)
    except KeyboardInterrupt:
        stop_event.set()
        logger.info("Interrupted")
        return 130
    return 0


def main() -> None:
    """Main entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
