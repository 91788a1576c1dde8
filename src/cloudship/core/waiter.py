"""
Readiness waiter.

Polls a backend predicate at a fixed interval until it holds or a bounded
window elapses. Timeouts are soft: the waiter logs a warning and returns
False, and the caller carries on. Two policies are used:

    stability_waiter() - "service is stable" after a rollout
    drain_waiter()     - "no tasks left" before cluster/service deletion,
                         additionally capped on iterations
"""

import logging
import time
from typing import Callable, Optional

from .. import constants as CONSTANTS
from .exceptions import TransientError
from .retry import interruptible_sleep

logger = logging.getLogger(__name__)


class ReadinessWaiter:
    """
    Soft-timeout poll loop.

    Attributes:
        interval_seconds: Wait between predicate checks
        timeout_seconds: Wall-clock window after which waiting stops
        max_iterations: Optional cap on predicate checks
    """

    def __init__(
        self,
        interval_seconds: float,
        timeout_seconds: float,
        max_iterations: Optional[int] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.max_iterations = max_iterations
        self._sleep = sleep
        self._clock = clock or time.monotonic

    def wait(self, predicate: Callable[[], bool], description: str) -> bool:
        """
        Poll `predicate` until it returns True or the window elapses.

        TransientError raised by the predicate counts as "not ready yet".
        Any other exception propagates.

        Returns:
            True if the predicate held, False on soft timeout

        Raises:
            OperationInterruptedError: If interrupted while sleeping
        """
        start = self._clock()
        iterations = 0

        logger.info(f"Waiting for {description}...")
        while True:
            iterations += 1
            try:
                ready = predicate()
            except TransientError as e:
                logger.debug(f"  {description}: not ready yet ({e})")
                ready = False

            if ready:
                logger.info(f"✓ {description}")
                return True

            elapsed = self._clock() - start
            if self.max_iterations is not None and iterations >= self.max_iterations:
                break
            if elapsed + self.interval_seconds > self.timeout_seconds:
                break

            logger.debug(f"  {description}: check {iterations} not satisfied, polling again in {self.interval_seconds:g}s")
            interruptible_sleep(self.interval_seconds, self._sleep)

        logger.warning(
            f"Timed out waiting for {description} after {iterations} checks "
            f"({self._clock() - start:.0f}s). Continuing; the backend will converge on its own."
        )
        return False


def stability_waiter(**kwargs) -> ReadinessWaiter:
    """Soft-timeout policy for "service is stable"."""
    return ReadinessWaiter(
        interval_seconds=CONSTANTS.STABILITY_POLL_INTERVAL_SECONDS,
        timeout_seconds=CONSTANTS.STABILITY_TIMEOUT_SECONDS,
        **kwargs
    )


def drain_waiter(**kwargs) -> ReadinessWaiter:
    """Soft-timeout policy with an iteration cap for "all tasks stopped"."""
    return ReadinessWaiter(
        interval_seconds=CONSTANTS.DRAIN_POLL_INTERVAL_SECONDS,
        timeout_seconds=CONSTANTS.DRAIN_TIMEOUT_SECONDS,
        max_iterations=CONSTANTS.DRAIN_MAX_ITERATIONS,
        **kwargs
    )
