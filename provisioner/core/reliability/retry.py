"""
Bounded retry — exponential backoff with jitter for network-bound commands.

Only commands with a transient-failure character get retried (git clone,
remote installer downloads, Flathub calls). A missing binary is never
transient and is returned immediately.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable

from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, and how long to wait in between.

    Args:
        max_attempts: Total attempts including the first one.
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Upper bound for any single delay.
        jitter: Extra random delay, as a fraction of the computed delay.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.3

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * self.jitter)


NO_RETRY = RetryPolicy(max_attempts=1)


def call_with_retry(
    fn: Callable[[], Receipt],
    policy: RetryPolicy,
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> Receipt:
    """Call ``fn`` until it returns a successful receipt or attempts run out.

    The returned receipt is the last one, with ``metadata["attempts"]`` set.
    """
    attempt = 0
    while True:
        attempt += 1
        receipt = fn()
        receipt.metadata["attempts"] = attempt

        if receipt.ok or receipt.metadata.get("missing_tool"):
            return receipt
        if attempt >= policy.max_attempts:
            if policy.max_attempts > 1:
                logger.warning("%s failed after %d attempts", label or "command", attempt)
            return receipt

        delay = policy.delay_for(attempt)
        logger.info(
            "%s failed (attempt %d/%d), retrying in %.1fs",
            label or "command",
            attempt,
            policy.max_attempts,
            delay,
        )
        sleep(delay)
