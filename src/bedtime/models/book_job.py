"""BookJob entity - unit of orchestration work for one book."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from bedtime.core.timezone import UtcDateTime, utc_now

DEFAULT_MAX_ATTEMPTS = 3


class JobStatus(str, Enum):
    """Job lifecycle status."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStep(str, Enum):
    """Ordered generation steps.

    The pointer only moves forward one position at a time:
    character_sheet -> story_text -> cover_image -> page1_image -> complete
    """

    CHARACTER_SHEET = "character_sheet"
    STORY_TEXT = "story_text"
    COVER_IMAGE = "cover_image"
    PAGE1_IMAGE = "page1_image"
    COMPLETE = "complete"

    @classmethod
    def ordered(cls) -> list["JobStep"]:
        return list(cls)

    @property
    def position(self) -> int:
        return JobStep.ordered().index(self)

    def next(self) -> "JobStep":
        """Return the step that follows this one.

        Raises:
            ValueError: If called on the final `complete` step
        """
        steps = JobStep.ordered()
        if self is JobStep.COMPLETE:
            raise ValueError("complete is the final step and has no successor")
        return steps[self.position + 1]


class BookJob(SQLModel, table=True):
    """BookJob tracks one book's progress through the generation pipeline."""

    __tablename__ = "book_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    book_id: UUID = Field(foreign_key="books.id", index=True)
    status: JobStatus = Field(default=JobStatus.QUEUED, index=True)
    step: JobStep = Field(default=JobStep.CHARACTER_SHEET)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=UtcDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    started_at: Optional[datetime] = Field(default=None, sa_type=UtcDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UtcDateTime)

    @property
    def attempts_remaining(self) -> bool:
        return self.attempts < self.max_attempts
