"""Optional leader election so that only one replica reconciles at a time."""

from __future__ import annotations

import logging
import socket
import threading
import uuid
from typing import Callable, Optional

from kubernetes.leaderelection import electionconfig, leaderelection
from kubernetes.leaderelection.resourcelock.configmaplock import ConfigMapLock

from image_clone.config import Settings

logger = logging.getLogger(__name__)

LEASE_DURATION = 15
RENEW_DEADLINE = 10
RETRY_PERIOD = 2
SHUTDOWN_TIMEOUT = 60.0
"""Seconds to wait for the controller to stop once leadership ends."""


def candidate_identity() -> str:
    """Unique identity of this replica in the election."""
    return f"{socket.gethostname()}_{uuid.uuid4().hex[:8]}"


def run_with_leader_election(
    settings: Settings,
    run: Callable[[threading.Event], None],
    stop_event: threading.Event,
    identity: Optional[str] = None,
) -> None:
    """
    Call ``run`` once this replica is elected; block until ``stop_event`` is set.

    The ConfigMap named by ``leader_election_id`` in
    ``leader_election_namespace`` holds the lock. Losing leadership sets
    ``stop_event`` so ``run`` returns and the process can exit.
    """
    identity = identity or candidate_identity()
    lock = ConfigMapLock(settings.leader_election_id, settings.leader_election_namespace, identity)

    finished = threading.Event()
    leading = threading.Event()

    def on_started_leading() -> None:
        logger.info(f"{identity} became leader")
        leading.set()
        try:
            run(stop_event)
        finally:
            finished.set()

    def on_stopped_leading() -> None:
        logger.info(f"{identity} lost leadership, stopping")
        stop_event.set()

    election_config = electionconfig.Config(
        lock,
        LEASE_DURATION,
        RENEW_DEADLINE,
        RETRY_PERIOD,
        on_started_leading,
        on_stopped_leading,
    )

    logger.info(
        f"Waiting for leadership of {settings.leader_election_namespace}/{settings.leader_election_id}"
    )
    elector = leaderelection.LeaderElection(election_config)
    threading.Thread(target=elector.run, name="leader-election", daemon=True).start()

    stop_event.wait()
    if leading.is_set():
        finished.wait(timeout=SHUTDOWN_TIMEOUT)
