"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from bedtime.models.book import AgeBand, Book, BookStatus, InvalidStateTransition, Tone
from bedtime.models.book_job import BookJob, JobStatus, JobStep
from bedtime.models.book_page import BookPage, PageType

__all__ = [
    "AgeBand",
    "Book",
    "BookJob",
    "BookPage",
    "BookStatus",
    "InvalidStateTransition",
    "JobStatus",
    "JobStep",
    "PageType",
    "Tone",
]
