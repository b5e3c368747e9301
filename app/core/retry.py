"""
Retry with exponential backoff, shared by the batch writer and the ad-platform clients
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    For retry_async, max_attempts counts retries after the first try. BatchWriter only
    takes the delays and bounds total submits by its own max_retries. Delays are seconds.
    """
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based): base * 2**attempt, capped."""
        if attempt < 0:
            attempt = 0
        return min(self.base_delay * (2 ** attempt), self.max_delay)


async def retry_async(
    fn: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool],
    sleep: Optional[Sleep] = None,
    label: str = "call",
) -> Any:
    """
    Await fn() until it succeeds, the error is not retryable, or the policy is exhausted.
    The last error is re-raised.
    """
    sleep = sleep or asyncio.sleep
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt)
            attempt += 1
            logger.warning(
                f"{label} failed ({type(e).__name__}: {e}), retry {attempt}/{policy.max_attempts} in {delay:.1f}s"
            )
            await sleep(delay)


def is_retryable_http_status(status_code: int) -> bool:
    """429 and 5xx are transient."""
    return status_code == 429 or 500 <= status_code < 600
