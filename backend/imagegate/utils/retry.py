"""Retry policy and async retry combinator."""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait between attempts."""
    max_attempts: int = 5
    delay: float = 5.0
    backoff: float = 1.0  # 1.0 keeps the delay fixed
    max_delay: float = 60.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.delay * (self.backoff ** (attempt - 1)), self.max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], Awaitable[None] | None] | None = None,
    name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    The last exception is re-raised when every attempt fails.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                log.error("%s failed after %d attempts: %s", name, attempt, exc)
                raise
            wait = policy.delay_for(attempt)
            log.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                name, attempt, attempts, exc, wait,
            )
            if on_retry is not None:
                result = on_retry(attempt, exc)
                if asyncio.iscoroutine(result):
                    await result
            await asyncio.sleep(wait)
    raise RuntimeError("unreachable")  # pragma: no cover
