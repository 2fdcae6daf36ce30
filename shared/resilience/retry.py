import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx
import structlog

from shared.observability.metrics import ecomm_retry_attempts_total

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the zero-based ``attempt`` failed."""
        return min(self.base_delay * self.backoff_factor ** attempt, self.max_delay)


def is_retryable_error(error: BaseException) -> bool:
    """Connection errors, timeouts, 5xx and 429 are transient; everything else is not."""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status == 429
    return False


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_condition: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation: str = "call",
) -> T:
    for attempt in range(policy.max_retries + 1):
        try:
            return await fn()
        except Exception as error:
            if attempt == policy.max_retries or not retry_condition(error):
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "retry_scheduled",
                operation=operation,
                attempt=attempt + 1,
                delay_seconds=delay,
                error=str(error),
            )
            ecomm_retry_attempts_total.labels(operation=operation).inc()
            await sleep(delay)
    raise AssertionError("unreachable")
