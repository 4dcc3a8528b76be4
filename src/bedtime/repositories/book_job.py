"""BookJob repository for the generation pipeline.

Provides the atomic conditional claim that guarantees at most one worker
owns a job at a time, plus the status transitions the job processor drives.
"""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bedtime.core.timezone import utc_now
from bedtime.models.book_job import BookJob, JobStatus, JobStep


class BookJobRepository:
    """Repository for BookJob entities.

    Claiming is a single guarded UPDATE (`WHERE id = ? AND status = 'queued'`).
    A concurrent worker that loses the race sees zero affected rows and gets
    None back, never a half-claimed job.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: BookJob) -> BookJob:
        """Persist new job to database.

        Args:
            job: BookJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID) -> BookJob | None:
        """Retrieve job by UUID, always reloading column values from the database.

        Args:
            job_id: Job's unique identifier

        Returns:
            BookJob if found, None otherwise
        """
        result = await self.session.execute(
            select(BookJob)
            .where(BookJob.id == job_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_next_queued(self) -> BookJob | None:
        """Return the oldest queued job (FIFO by created_at) without claiming it."""
        result = await self.session.execute(
            select(BookJob)
            .where(BookJob.status == JobStatus.QUEUED)  # type: ignore[arg-type]
            .order_by(BookJob.created_at.asc())  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def try_claim(self, job_id: UUID) -> BookJob | None:
        """Atomically transition a queued job to processing.

        Query explanation:
        - UPDATE ... SET status='processing', started_at=now, attempts=attempts+1
        - WHERE id = :job_id AND status = 'queued': the guard predicate
        - Zero affected rows means another worker claimed it first

        The read of the claimed row happens only after the guarded write
        succeeded, so there is no read-then-write window.

        Args:
            job_id: Job to claim

        Returns:
            The claimed job (attempts already incremented), or None if the job
            was not queued when the update ran
        """
        now = utc_now()
        result = await self.session.execute(
            update(BookJob)
            .where(
                BookJob.id == job_id,  # type: ignore[arg-type]
                BookJob.status == JobStatus.QUEUED,  # type: ignore[arg-type]
            )
            .values(
                status=JobStatus.PROCESSING,
                started_at=now,
                updated_at=now,
                attempts=BookJob.attempts + 1,  # type: ignore[operator]
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:  # type: ignore[attr-defined]
            return None

        await self.session.flush()
        return await self.get_by_id(job_id)

    async def claim_next(self) -> BookJob | None:
        """Claim the oldest queued job.

        Returns:
            Claimed job, or None when the queue is empty or the race was lost
        """
        candidate = await self.find_next_queued()
        if candidate is None:
            return None
        return await self.try_claim(candidate.id)

    async def claim(self, job_id: UUID) -> BookJob | None:
        """Claim a specific job by id (self-continuation and webhook triggers)."""
        return await self.try_claim(job_id)

    async def advance_step(self, job: BookJob, next_step: JobStep) -> None:
        """Move the step pointer. Status is left for the caller to decide."""
        job.step = next_step
        job.updated_at = utc_now()
        self.session.add(job)
        await self.session.flush()

    async def requeue(self, job: BookJob) -> None:
        """Return a job to the queue after a successful step so the next step can run.

        Attempts are counted per step: the counter restarts for the new step.
        """
        job.status = JobStatus.QUEUED
        job.attempts = 0
        job.error_message = None
        job.updated_at = utc_now()
        self.session.add(job)
        await self.session.flush()

    async def requeue_for_retry(self, job: BookJob, error_message: str) -> None:
        """Return a job to the queue at the same step after a failed attempt.

        Args:
            job: BookJob entity to update
            error_message: Error description (truncated to 1000 characters)
        """
        job.status = JobStatus.QUEUED
        job.error_message = error_message[:1000]
        job.updated_at = utc_now()
        self.session.add(job)
        await self.session.flush()

    async def mark_completed(self, job: BookJob) -> None:
        now = utc_now()
        job.status = JobStatus.COMPLETED
        job.error_message = None
        job.completed_at = now
        job.updated_at = now
        self.session.add(job)
        await self.session.flush()

    async def mark_failed(self, job: BookJob, error_message: str) -> None:
        """Mark job as permanently failed with error message.

        Args:
            job: BookJob entity to update
            error_message: Error description (truncated to 1000 characters)
        """
        now = utc_now()
        job.status = JobStatus.FAILED
        job.error_message = error_message[:1000]
        job.completed_at = now
        job.updated_at = now
        self.session.add(job)
        await self.session.flush()

    async def recover_orphaned(self, lease_seconds: float) -> int:
        """Reset jobs whose processing lease has expired back to 'queued'.

        Worker crashes leave jobs in 'processing'. A job claimed less than
        `lease_seconds` ago may still be running in another worker, so only
        claims older than the lease are reset. The step pointer is untouched,
        so the interrupted step simply runs again.

        Args:
            lease_seconds: Age of a claim after which its owner is presumed dead

        Returns:
            Number of jobs reset
        """
        cutoff = utc_now() - timedelta(seconds=lease_seconds)
        result = await self.session.execute(
            update(BookJob)
            .where(
                BookJob.status == JobStatus.PROCESSING,  # type: ignore[arg-type]
                or_(
                    BookJob.started_at.is_(None),  # type: ignore[union-attr]
                    BookJob.started_at < cutoff,  # type: ignore[operator]
                ),
            )
            .values(status=JobStatus.QUEUED, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
