"""Polling worker tests: startup recovery and the claim loop."""

import asyncio
from datetime import timedelta

import pytest

from bedtime.core.timezone import utc_now
from bedtime.models.book import BookStatus
from bedtime.models.book_job import JobStatus, JobStep
from bedtime.workers.book_job_worker import recover_orphaned_jobs, run_book_job_worker


@pytest.mark.asyncio
async def test_recovery_resets_expired_processing_jobs(processor, uow_factory, create_book, settings):
    created = await create_book()
    async with await uow_factory() as uow:
        job = await uow.jobs.claim(created.job_id)
        job.started_at = utc_now() - timedelta(seconds=settings.orphan_lease_seconds + 60)
        await uow.jobs.advance_step(job, JobStep.COVER_IMAGE)

    recovered = await recover_orphaned_jobs(processor, settings.orphan_lease_seconds)

    assert recovered == 1
    async with await uow_factory() as uow:
        job = await uow.jobs.get_by_id(created.job_id)
    assert job.status == JobStatus.QUEUED
    assert job.step == JobStep.COVER_IMAGE


@pytest.mark.asyncio
async def test_recovery_with_nothing_orphaned(processor, create_book, settings):
    await create_book()

    assert await recover_orphaned_jobs(processor, settings.orphan_lease_seconds) == 0


@pytest.mark.asyncio
async def test_worker_start_leaves_in_flight_job_alone(processor, uow_factory, create_book, settings):
    """A worker (re)starting while another caller runs a step must not take the job over."""
    settings.poll_interval_seconds = 0.01
    created = await create_book()
    async with await uow_factory() as uow:
        await uow.jobs.claim(created.job_id)

    task = asyncio.create_task(run_book_job_worker(processor, settings))
    try:
        await asyncio.sleep(0.05)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async with await uow_factory() as uow:
        job = await uow.jobs.get_by_id(created.job_id)
    assert job.status == JobStatus.PROCESSING
    assert job.step == JobStep.CHARACTER_SHEET
    assert job.attempts == 1


@pytest.mark.asyncio
async def test_worker_drives_job_to_preview(processor, uow_factory, create_book, settings):
    settings.poll_interval_seconds = 0.01
    created = await create_book()

    task = asyncio.create_task(run_book_job_worker(processor, settings))
    try:
        for _ in range(200):
            async with await uow_factory() as uow:
                job = await uow.jobs.get_by_id(created.job_id)
            if job.status == JobStatus.COMPLETED:
                break
            await asyncio.sleep(0.01)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async with await uow_factory() as uow:
        book = await uow.books.get_by_id(created.book_id)
    assert job.status == JobStatus.COMPLETED
    assert book.status == BookStatus.PREVIEW_READY
