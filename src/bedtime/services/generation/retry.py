"""In-call retry with fixed backoff delays for generation requests."""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog

from bedtime.services.exceptions import TransientError

T = TypeVar("T")
logger = structlog.get_logger(__name__)


async def retry_transient(
    func: Callable[[], Awaitable[T]],
    max_retries: int,
    delays: Sequence[float],
    operation: str,
) -> T:
    """Run `func`, retrying only on TransientError.

    Delays are taken from `delays` by retry index; the last delay is reused
    when there are more retries than delays. Permanent errors propagate
    immediately. After `max_retries` retries the last TransientError is
    re-raised so the job processor can decide whether to requeue the step.

    Args:
        func: Zero-argument coroutine factory performing one request
        max_retries: Number of retries after the first attempt
        delays: Backoff delays in seconds
        operation: Name used in log events
    """
    attempt = 0
    while True:
        try:
            return await func()
        except TransientError as e:
            if attempt >= max_retries:
                raise
            delay = delays[min(attempt, len(delays) - 1)] if delays else 0.0
            attempt += 1
            logger.warning(
                "generation.retry",
                operation=operation,
                retry=attempt,
                max_retries=max_retries,
                delay_seconds=delay,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            await asyncio.sleep(delay)
