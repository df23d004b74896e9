"""
Retry wrapper for throttled Freshservice calls
"""
import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from helpdesk_dashboard.services.errors import RateLimitedError, RetriesExhaustedError
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def with_rate_limit_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_ms: int = 5000
) -> T:
    """
    Run an async operation, retrying when it is throttled

    Delay before attempt n+1 is max(retry_after * 1000, base_delay_ms * n).
    Any failure other than RateLimitedError propagates immediately.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Total attempts including the first
        base_delay_ms: Linear backoff base in milliseconds

    Returns:
        The operation result

    Raises:
        RetriesExhaustedError: Every attempt was throttled
    """
    last_hint: Optional[float] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except RateLimitedError as e:
            last_hint = e.retry_after
            if attempt >= max_attempts:
                raise RetriesExhaustedError(max_attempts, retry_after=last_hint) from e

            hinted_ms = (e.retry_after or 0) * 1000
            delay_ms = max(hinted_ms, base_delay_ms * attempt)
            logger.warning(
                f"Rate limited, retrying in {delay_ms:.0f}ms "
                f"(attempt {attempt}/{max_attempts})"
            )
            await asyncio.sleep(delay_ms / 1000)

    raise RetriesExhaustedError(max_attempts, retry_after=last_hint)
