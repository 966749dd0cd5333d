"""
Retry combinator for provider calls.

with_retry() runs an async callable with bounded attempts, exponential
backoff plus random jitter, and early abort through a CancelToken. It knows
nothing about any particular provider; callers decide what is retryable.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.exceptions import LengthMismatchError, ProviderError, RunCancelled
from vnlocalize.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Attempt budget and backoff shape for one provider call."""
    max_attempts: int = 3
    base_delay: float = 0.7    # seconds
    max_delay: float = 8.0     # seconds
    jitter: float = 0.25       # seconds, uniform

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number attempt + 1 (attempt is 0-based)."""
        wait = self.base_delay * (2 ** attempt) + random.uniform(0, self.jitter)
        return min(self.max_delay, wait)

    @classmethod
    def from_config(cls, retry_config: dict) -> "RetryPolicy":
        retry_config = retry_config or {}
        return cls(
            max_attempts=max(1, int(retry_config.get("max_attempts", cls.max_attempts))),
            base_delay=float(retry_config.get("base_delay", cls.base_delay)),
            max_delay=float(retry_config.get("max_delay", cls.max_delay)),
            jitter=float(retry_config.get("jitter", cls.jitter)),
        )


def is_retryable(error: Exception) -> bool:
    """Default retry predicate: transient provider failures only."""
    if isinstance(error, (RunCancelled, LengthMismatchError)):
        return False
    if isinstance(error, ProviderError):
        return error.retryable
    return False


async def with_retry(
    fn: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    cancel_token: Optional[CancelToken] = None,
    should_retry: Callable[[Exception], bool] = is_retryable,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> T:
    """
    Call fn(attempt) until it succeeds or the attempt budget is spent.

    Args:
        fn: Async callable receiving the 0-based attempt number
        policy: Attempt budget and backoff shape
        cancel_token: Optional token; checked before each attempt and during backoff
        should_retry: Predicate deciding whether an error is worth another attempt
        on_retry: Optional hook called with (error, attempt) before sleeping

    Returns:
        Whatever fn returns on the first successful attempt

    Raises:
        The last error raised by fn, or RunCancelled
    """
    last_error: Optional[Exception] = None

    for attempt in range(policy.max_attempts):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            return await fn(attempt)
        except RunCancelled:
            raise
        except Exception as e:
            last_error = e
            if not should_retry(e):
                logger.debug(f"  Non-retryable error on attempt {attempt + 1}: {e}")
                raise
            if attempt >= policy.max_attempts - 1:
                break
            wait_time = policy.delay_for(attempt)
            logger.warning(
                f"  Attempt {attempt + 1}/{policy.max_attempts} failed: {e}. "
                f"Waiting {wait_time:.2f}s before retry..."
            )
            if on_retry:
                on_retry(e, attempt)
            if cancel_token is not None:
                await cancel_token.sleep(wait_time)
            else:
                await asyncio.sleep(wait_time)

    raise last_error
