"""
Fixed-interval retry primitive.

Used only where a step is allowed to retry: HTTP calls against nodes
that are still starting, JSON-RPC account unlocks, image pulls.
Everything else fails on the first error.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry(
    fn: Callable[[], T],
    retries: int,
    period: float,
    *,
    description: str = "operation",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``retries + 1`` times, ``period`` seconds apart.

    The last error is re-raised once the budget is spent.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except retry_on as e:
            if attempt >= retries:
                raise
            attempt += 1
            logger.debug(
                "%s failed (%s) — retry %d/%d in %.1fs",
                description, e, attempt, retries, period,
            )
            sleep(period)
