"""
Explicit retry policy for network operations.

Instead of wrapping calls in a retry callback that re-raises, every operation
receives a RetryPolicy and gets a RetryOutcome back: either the value, or the
last error together with the number of attempts that were spent.

Only TransientNetworkError is retried. Validation failures and permanent HTTP
statuses are returned immediately since retrying cannot change them.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, TypeVar

from .errors import NetworkError, TransientNetworkError


logger = logging.getLogger("retry")

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[NetworkError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RetryPolicy:
    """
    Bounded exponential backoff.

    Args:
        max_attempts: Total attempts, first try included (3 means 2 retries)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        sleep: Injected sleep function (tests pass a recorder)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number attempt (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def run(self, operation: Callable[[], T], label: str = "operation") -> RetryOutcome[T]:
        last_error: Optional[NetworkError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return RetryOutcome(value=operation(), attempts=attempt)
            except TransientNetworkError as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{label} failed (attempt {attempt}/{self.max_attempts}): {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                self.sleep(delay)
            except NetworkError as e:
                logger.warning(f"{label} failed permanently: {e}")
                return RetryOutcome(error=e, attempts=attempt)

        logger.error(f"{label} gave up after {self.max_attempts} attempts: {last_error}")
        return RetryOutcome(error=last_error, attempts=self.max_attempts)
