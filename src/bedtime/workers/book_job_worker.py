"""Polling worker for book generation jobs.

Alternative to the HTTP and webhook triggers for deployments without a
scheduler: claims queued jobs in a loop and runs one step per claim through
the shared JobProcessor.
"""

import asyncio

import structlog

from bedtime.core.config import Settings
from bedtime.workers.job_processor import JobProcessor

logger = structlog.get_logger(__name__)

ERROR_BACKOFF_SECONDS = 5


async def recover_orphaned_jobs(processor: JobProcessor, lease_seconds: float) -> int:
    """Reset jobs stuck in 'processing' status on startup.

    Worker crashes leave jobs in 'processing'. Only jobs claimed more than
    `lease_seconds` ago are reset, so a step still running in another worker,
    a webhook continuation or the admin trigger keeps its claim. Orphans are
    reset regardless of attempt count; their step pointer is unchanged.

    Args:
        processor: Shared job processor
        lease_seconds: Age of a claim after which its owner is presumed dead

    Returns:
        Number of jobs reset
    """
    async with await processor.uow_factory() as uow:
        recovered_count = await uow.jobs.recover_orphaned(lease_seconds)

    if recovered_count > 0:
        logger.info(
            "worker.recovery", orphaned_jobs_reset=recovered_count, lease_seconds=lease_seconds
        )
    return recovered_count


async def run_book_job_worker(processor: JobProcessor, settings: Settings) -> None:
    """Main worker loop for book generation.

    Workflow:
    1. Run startup recovery (reset orphaned jobs whose lease expired)
    2. Process steps back to back while the queue has work
    3. Sleep POLL_INTERVAL_SECONDS when the queue is empty
    4. Log unexpected errors and back off before polling again
    5. Propagate CancelledError for graceful shutdown

    Args:
        processor: Shared job processor
        settings: Application settings (poll interval, orphan lease)
    """
    await recover_orphaned_jobs(processor, settings.orphan_lease_seconds)

    logger.info("worker.started", poll_interval=settings.poll_interval_seconds)

    try:
        while True:
            try:
                result = await processor.process_next()
                if not result.processed:
                    await asyncio.sleep(settings.poll_interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "worker.error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)

    except asyncio.CancelledError:
        logger.info("worker.stopped")
        raise
