"""Book generation job processor.

Runs exactly one pipeline step per `process_next()` call:

1. Claim a queued job (atomic conditional update, attempts + 1) and load
   its book and the step inputs; a missing book fails the job immediately
2. Run the generation half of the job's current step, outside any transaction
3. On success record the artifacts and advance the pointer in one
   transaction, then requeue (or finalize when the next step is `complete`)
4. On failure, in a fresh transaction, requeue the same step or fail the
   job and book

## Transaction boundaries

Claim, record and failure bookkeeping each get their own short Unit of
Work; no connection is held while a generation call is in flight. The
claim commits before any slow generation call so that a concurrent caller
sees the job as `processing` for the whole step. A step that fails never
reaches its record transaction, so it leaves no partial database state.

Step errors never escape `process_next()`; they come back in
`ProcessResult.error`. Errors raised by the claim or by failure bookkeeping
(database outage) propagate to the caller.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import UUID

import structlog

from bedtime.core.config import Settings
from bedtime.models.book import BookStatus
from bedtime.models.book_job import BookJob, JobStatus, JobStep
from bedtime.models.book_page import FIRST_CONTENT_PAGE_NUMBER
from bedtime.pipeline.steps import StepContext, finalize_preview, get_step
from bedtime.services.exceptions import BookNotFoundError, PermanentError
from bedtime.services.generation.capabilities import GenerationCapabilities
from bedtime.services.storage.artifact_store import ArtifactStore
from bedtime.uow import UnitOfWork

logger = structlog.get_logger(__name__)

UowFactory = Callable[[], Awaitable[UnitOfWork]]


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one processor invocation.

    `processed=False` means the queue was empty (or the claim race was lost)
    and nothing was written.
    """

    processed: bool
    book_id: UUID | None = None
    job_id: UUID | None = None
    step: JobStep | None = None
    job_status: JobStatus | None = None
    error: str | None = None

    @property
    def has_more(self) -> bool:
        """True when the job went back to the queue and another invocation should follow."""
        return self.processed and self.job_status == JobStatus.QUEUED

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys for HTTP responses."""
        return {
            "processed": self.processed,
            "bookId": str(self.book_id) if self.book_id else None,
            "jobId": str(self.job_id) if self.job_id else None,
            "step": self.step.value if self.step else None,
            "jobStatus": self.job_status.value if self.job_status else None,
            "hasMore": self.has_more,
            "error": self.error,
        }


NOTHING_PROCESSED = ProcessResult(processed=False)


@dataclass(frozen=True)
class ClaimedJob:
    """A job owned by this invocation, with the inputs its step needs."""

    job: BookJob
    context: StepContext


class JobProcessor:
    """State machine driving book jobs through the generation steps."""

    def __init__(
        self,
        uow_factory: UowFactory,
        store: ArtifactStore,
        capabilities: GenerationCapabilities,
        settings: Settings,
    ):
        """Initialize processor.

        Args:
            uow_factory: Factory returning a new UnitOfWork per transaction
            store: Artifact store for photos and generated images
            capabilities: Text and image generation clients
            settings: Application settings (fail-fast policy)
        """
        self.uow_factory = uow_factory
        self.store = store
        self.capabilities = capabilities
        self.fail_fast_on_permanent_errors = settings.fail_fast_on_permanent_errors

    async def process_next(self, job_id: UUID | None = None) -> ProcessResult:
        """Claim one job and run its current step.

        Args:
            job_id: Claim this specific job instead of the oldest queued one

        Returns:
            ProcessResult describing what happened
        """
        claimed = await self._claim(job_id)
        if claimed is None:
            return NOTHING_PROCESSED
        if isinstance(claimed, ProcessResult):
            return claimed

        job = claimed.job
        step = job.step
        log = logger.bind(job_id=str(job.id), book_id=str(job.book_id), step=step.value)
        log.info("job.claimed", attempt=job.attempts, max_attempts=job.max_attempts)

        start_time = time.time()
        try:
            artifacts = await get_step(step).generate(claimed.context)
            job_status = await self._record_step(job.id, step, artifacts)
        except Exception as e:
            return await self._handle_failure(job.id, step, e, log)

        log.info(
            "job.step.succeeded",
            job_status=job_status.value,
            duration_seconds=round(time.time() - start_time, 2),
        )
        return ProcessResult(
            processed=True,
            book_id=job.book_id,
            job_id=job.id,
            step=step,
            job_status=job_status,
        )

    async def _claim(self, job_id: UUID | None) -> ClaimedJob | ProcessResult | None:
        """Claim a job, move its book to generating and load the step inputs.

        All in one short transaction that commits before any generation call.

        Returns:
            The claimed job with its step context, a failed ProcessResult when
            the book is missing, or None when nothing could be claimed
        """
        async with await self.uow_factory() as uow:
            if job_id is not None:
                job = await uow.jobs.claim(job_id)
            else:
                job = await uow.jobs.claim_next()
            if job is None:
                logger.debug("job.claim.none", requested_job_id=str(job_id) if job_id else None)
                return None

            book = await uow.books.get_by_id(job.book_id)
            if book is None:
                error = BookNotFoundError(f"Book {job.book_id} not found")
                await uow.jobs.mark_failed(job, str(error))
                logger.error(
                    "job.failed",
                    job_id=str(job.id),
                    book_id=str(job.book_id),
                    step=job.step.value,
                    error_type=type(error).__name__,
                    error_message=str(error),
                )
                return ProcessResult(
                    processed=True,
                    book_id=job.book_id,
                    job_id=job.id,
                    step=job.step,
                    job_status=JobStatus.FAILED,
                    error=str(error),
                )

            if book.status == BookStatus.DRAFT:
                book.mark_generating()
                await uow.books.save(book)

            page1 = None
            if job.step == JobStep.PAGE1_IMAGE:
                page1 = await uow.pages.get(book.id, FIRST_CONTENT_PAGE_NUMBER)

            context = StepContext(
                book=book, page1=page1, store=self.store, capabilities=self.capabilities
            )
            return ClaimedJob(job=job, context=context)

    async def _record_step(self, job_id: UUID, step: JobStep, artifacts: dict[str, Any]) -> JobStatus:
        """Write the step's artifacts and advance the pointer in one transaction.

        Raises:
            Exception: Anything the writes raised; the transaction is rolled back
        """
        async with await self.uow_factory() as uow:
            job = await uow.jobs.get_by_id(job_id)
            if job is None:
                raise RuntimeError(f"Claimed job {job_id} disappeared")
            book = await uow.books.get_by_id(job.book_id)
            if book is None:
                raise BookNotFoundError(f"Book {job.book_id} not found")

            await get_step(step).record(uow, book, artifacts)
            logger.debug("job.step.artifacts", job_id=str(job.id), **artifacts)

            if job.step != JobStep.COMPLETE:
                await uow.jobs.advance_step(job, job.step.next())
            if job.step == JobStep.COMPLETE:
                await finalize_preview(uow, book, job)
            else:
                await uow.jobs.requeue(job)
            return job.status

    async def _handle_failure(
        self, job_id: UUID, step: JobStep, error: Exception, log: Any
    ) -> ProcessResult:
        """Record a failed attempt: requeue the same step or fail job and book."""
        message = str(error) or type(error).__name__
        permanent = isinstance(error, PermanentError)

        async with await self.uow_factory() as uow:
            job = await uow.jobs.get_by_id(job_id)
            if job is None:
                raise RuntimeError(f"Claimed job {job_id} disappeared")

            fail_now = (permanent and self.fail_fast_on_permanent_errors) or (
                not job.attempts_remaining
            )
            if not fail_now:
                await uow.jobs.requeue_for_retry(job, message)
                log.warning(
                    "job.step.retry",
                    attempt=job.attempts,
                    max_attempts=job.max_attempts,
                    error_type=type(error).__name__,
                    error_message=message,
                )
            else:
                await uow.jobs.mark_failed(job, message)
                book = await uow.books.get_by_id(job.book_id)
                if book is not None and not book.status.is_terminal:
                    book.mark_failed(f"Generation failed: {message}")
                    await uow.books.save(book)
                log.error(
                    "job.failed",
                    attempt=job.attempts,
                    max_attempts=job.max_attempts,
                    permanent=permanent,
                    error_type=type(error).__name__,
                    error_message=message,
                )

            return ProcessResult(
                processed=True,
                book_id=job.book_id,
                job_id=job.id,
                step=step,
                job_status=job.status,
                error=message,
            )

    async def run_until_idle(self, max_steps: int | None = None) -> list[ProcessResult]:
        """Keep processing until the queue is empty or `max_steps` invocations ran."""
        results: list[ProcessResult] = []
        while max_steps is None or len(results) < max_steps:
            result = await self.process_next()
            if not result.processed:
                break
            results.append(result)
        return results

    async def process_job_to_completion(
        self, job_id: UUID, max_steps: int | None = None
    ) -> list[ProcessResult]:
        """Drive one job step by step while it has more work.

        Args:
            job_id: Job to drive
            max_steps: Upper bound on invocations (no bound when None)

        Returns:
            Results of each invocation that processed a step
        """
        results: list[ProcessResult] = []
        while max_steps is None or len(results) < max_steps:
            result = await self.process_next(job_id)
            if not result.processed:
                break
            results.append(result)
            if not result.has_more:
                break
        return results
