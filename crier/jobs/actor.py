"""Dramatiq actor that triggers a notification cycle.

Deployments that already run a Dramatiq scheduler can enqueue cycles instead
of running ``crier`` as a long-lived process:

>>> check_for_new_events_job.send(config_path="/etc/crier/crier.yaml")

Only one cycle runs per worker process at a time; a trigger arriving while a
cycle is in flight is skipped rather than queued behind it.

Setting ``CRIER_ALLOW_STUB_BROKER=1`` lets the actor be imported and called
in-process without a RabbitMQ or Redis broker.
"""

from __future__ import annotations

import asyncio
import os
import threading

import dramatiq
import dramatiq.broker
from dramatiq.brokers.stub import StubBroker

from crier.config import load_config
from crier.logging import get_logger, log_info, log_warning
from crier.runtime import run_once

STUB_BROKER_ENV = "CRIER_ALLOW_STUB_BROKER"

logger = get_logger(__name__)

_CYCLE_LOCK = threading.Lock()


def install_stub_broker_if_allowed() -> bool:
    """Install a ``StubBroker`` when allowed and no broker is set yet.

    Returns ``True`` when a stub broker was installed.
    """
    allowed = os.environ.get(STUB_BROKER_ENV, "").strip().lower()
    if allowed not in {"1", "true", "yes"}:
        return False
    if dramatiq.broker.global_broker is not None:
        return False
    dramatiq.set_broker(StubBroker())
    log_info(logger, "Using in-process stub broker (%s is set)", STUB_BROKER_ENV)
    return True


# The actor binds to the global broker when it is declared.
install_stub_broker_if_allowed()


@dramatiq.actor(max_retries=0)
def check_for_new_events_job(config_path: str | None = None) -> int | None:
    """Run one notification cycle unless another is already running.

    Parameters
    ----------
    config_path
        YAML configuration file; ``CRIER_CONFIG`` is used when omitted.

    Returns
    -------
    int | None
        Events processed, or ``None`` when the trigger was skipped.

    """
    if not _CYCLE_LOCK.acquire(blocking=False):
        log_warning(logger, "Notification cycle already running; skipping trigger")
        return None
    try:
        config = load_config(config_path)
        processed = asyncio.run(run_once(config))
    finally:
        _CYCLE_LOCK.release()
    log_info(logger, "Notification job processed %d events", processed)
    return processed
