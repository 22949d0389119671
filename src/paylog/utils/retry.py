"""Retry policy with exponential backoff.

The retry loop is kept as data (``RetryState``) so a caller can inspect how
many attempts were spent and what the next delay would have been. ``sleep`` is
injectable so tests run without real waiting.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from .exceptions import RetryableError
from .logger import get_logger

logger = get_logger()

T = TypeVar("T")


@dataclass
class RetryState:
    """Progress of one retried operation."""
    attempt: int = 0
    next_delay: float = 0.0
    last_error: Optional[BaseException] = None
    gave_up: bool = False


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    Args:
        max_attempts: Total attempts including the first one
        initial_delay: Delay after the first failed attempt, in seconds
        backoff_factor: Multiplier applied to the delay after each failure
        retryable_exceptions: Exception types that trigger another attempt
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    retryable_exceptions: Tuple[Type[BaseException], ...] = field(default=(RetryableError,))

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.initial_delay * (self.backoff_factor ** (attempt - 1))

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retryable_exceptions)

    def execute(
        self,
        func: Callable[[], T],
        state: Optional[RetryState] = None,
        sleep: Callable[[float], None] = time.sleep,
        name: Optional[str] = None
    ) -> T:
        """
        Run func until it succeeds, fails with a non-retryable error, or the
        attempt budget is spent.

        The last error is re-raised; ``state`` records what happened.
        """
        state = state if state is not None else RetryState()
        label = name or getattr(func, "__name__", "operation")

        while True:
            state.attempt += 1
            try:
                return func()
            except Exception as e:
                state.last_error = e

                if not self.is_retryable(e):
                    state.gave_up = True
                    logger.error(f"Non-retryable failure in {label} (attempt {state.attempt}): {e}")
                    raise

                if state.attempt >= self.max_attempts:
                    state.gave_up = True
                    logger.error(f"Max retries ({self.max_attempts}) exceeded for {label}: {e}")
                    raise

                state.next_delay = self.delay_for(state.attempt)
                logger.warning(
                    f"Retry {state.attempt}/{self.max_attempts} for {label} "
                    f"after {state.next_delay:.1f}s: {e}"
                )
                sleep(state.next_delay)
