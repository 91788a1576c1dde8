"""
Retry/backoff engine for the service update call.

A freshly pushed image is not always immediately pullable by the backend,
so the service update is retried a bounded number of times with a backoff
chosen by the failure's classification:

    ImagePropagationError  -> base + attempt * increment  (60s, 90s)
    other non-fatal errors -> flat delay                  (15s)
    FATAL errors           -> re-raised immediately, never retried

Sleeping goes through interruptible_sleep(): Ctrl-C while waiting surfaces
as OperationInterruptedError instead of being counted as an attempt.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, TypeVar

from .. import constants as CONSTANTS
from .exceptions import (
    DeploymentError,
    ErrorClass,
    ImagePropagationError,
    OperationInterruptedError,
    RetryExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def interruptible_sleep(seconds: float, sleep: Optional[Callable[[float], None]] = None) -> None:
    """
    Block for `seconds`, converting an interrupt into OperationInterruptedError.

    Raises:
        OperationInterruptedError: If interrupted while sleeping
    """
    try:
        (sleep or time.sleep)(seconds)
    except KeyboardInterrupt as e:
        raise OperationInterruptedError(f"Interrupted while waiting {seconds:g}s") from e


def classify(error: BaseException) -> ErrorClass:
    """
    Classify a failure for retry purposes.

    Classified DeploymentErrors keep their tag. Anything else reaching the
    engine was not translated by a backend binding and is treated as
    transient, so it gets the flat retry schedule.
    """
    if isinstance(error, DeploymentError):
        return error.error_class
    return ErrorClass.TRANSIENT


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry schedule.

    Attributes:
        max_attempts: Total number of attempts, including the first
        propagation_base_seconds: Base wait for image propagation failures
        propagation_increment_seconds: Added per failed attempt
        flat_delay_seconds: Wait for any other non-fatal failure
    """

    max_attempts: int = CONSTANTS.MAX_SERVICE_UPDATE_ATTEMPTS
    propagation_base_seconds: float = CONSTANTS.IMAGE_PROPAGATION_BASE_SECONDS
    propagation_increment_seconds: float = CONSTANTS.IMAGE_PROPAGATION_INCREMENT_SECONDS
    flat_delay_seconds: float = CONSTANTS.FLAT_RETRY_DELAY_SECONDS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int, error: BaseException) -> float:
        """
        Wait before the next attempt.

        Args:
            attempt: 1-based number of the attempt that just failed
            error: The failure of that attempt
        """
        if isinstance(error, ImagePropagationError):
            return self.propagation_base_seconds + attempt * self.propagation_increment_seconds
        return self.flat_delay_seconds


@dataclass
class RolloutAttempt:
    """One try of a retried operation. Not persisted."""

    number: int
    started_at: datetime
    outcome: Optional[ErrorClass] = None
    error: Optional[BaseException] = None
    delay_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None


class RetryEngine:
    """
    Runs one fallible operation under a RetryPolicy.

    The attempts of the most recent run() are kept on `attempts`, so the
    rollout result can report how many tries the service update needed.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.attempts: List[RolloutAttempt] = []

    def run(self, operation: Callable[[], T], description: str = "operation") -> T:
        """
        Call `operation` until it succeeds or the attempt bound is reached.

        Returns:
            The operation's return value

        Raises:
            DeploymentError: A FATAL failure, re-raised unchanged
            RetryExhaustedError: After max_attempts failures
            OperationInterruptedError: If interrupted during a backoff wait
        """
        self.attempts = []
        max_attempts = self.policy.max_attempts
        last_error: Optional[BaseException] = None

        for number in range(1, max_attempts + 1):
            attempt = RolloutAttempt(number=number, started_at=datetime.now(timezone.utc))
            self.attempts.append(attempt)
            logger.info(f"Attempting {description} (attempt {number}/{max_attempts})...")

            try:
                result = operation()
            except Exception as e:
                attempt.error = e
                attempt.outcome = classify(e)
                last_error = e

                if attempt.outcome == ErrorClass.FATAL:
                    logger.error(f"  {description} failed with a non-retryable error: {e}")
                    raise

                if number == max_attempts:
                    logger.error("  Maximum retry attempts reached")
                    break

                delay = self.policy.delay_for(number, e)
                attempt.delay_seconds = delay
                if isinstance(e, ImagePropagationError):
                    logger.warning(
                        f"  Image not yet available to the backend. "
                        f"Waiting {delay:g} seconds for image propagation..."
                    )
                else:
                    logger.warning(f"  {description} failed: {e}")
                    logger.warning(f"  Retrying in {delay:g} seconds...")
                interruptible_sleep(delay, self._sleep)
                continue

            logger.info(f"✓ {description} succeeded on attempt {number}")
            return result

        raise RetryExhaustedError(description, list(self.attempts), last_error) from last_error
