"""Book job processing: the step state machine and its polling worker."""

from bedtime.workers.book_job_worker import recover_orphaned_jobs, run_book_job_worker
from bedtime.workers.job_processor import JobProcessor, ProcessResult

__all__ = [
    "JobProcessor",
    "ProcessResult",
    "recover_orphaned_jobs",
    "run_book_job_worker",
]
