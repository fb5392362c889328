"""
Readiness prober — wait for something to start listening.

Uses the same raw TCP signal as the pre-flight port check with the
opposite polarity: an accepted connection means the service is up.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ledgerstack.core.errors import ReadinessTimeoutError
from ledgerstack.core.services.ports import check_port_available

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 120
DEFAULT_PERIOD = 1.0


def port_is_listening(port: int) -> bool:
    return not check_port_available(port)


def wait_for_port(
    port: int,
    retries: int = DEFAULT_RETRIES,
    period: float = DEFAULT_PERIOD,
    *,
    probe: Callable[[int], bool] = port_is_listening,
    target: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Sleep-then-probe until the port accepts connections.

    Returns:
        The attempt number (1-based) that succeeded.

    Raises:
        ReadinessTimeoutError: After ``retries`` failed attempts.
    """
    started = time.monotonic()
    for attempt in range(1, retries + 1):
        sleep(period)
        if probe(port):
            logger.debug("Port %d ready after %d attempt(s)", port, attempt)
            return attempt
        logger.debug("Port %d not ready (attempt %d/%d)", port, attempt, retries)

    elapsed = time.monotonic() - started
    raise ReadinessTimeoutError(
        target or f"firefly to start on port {port}",
        elapsed,
    )
