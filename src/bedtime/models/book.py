"""Book entity - the user-facing storybook generation request."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from bedtime.core.timezone import UtcDateTime, utc_now


class BookStatus(str, Enum):
    """Book lifecycle status."""

    DRAFT = "draft"
    GENERATING = "generating"
    PREVIEW_READY = "preview_ready"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_BOOK_STATUSES

    @property
    def has_preview(self) -> bool:
        """True once the cover and page 1 may be shown to the reader."""
        return self in (BookStatus.PREVIEW_READY, BookStatus.PAID, BookStatus.COMPLETED)


TERMINAL_BOOK_STATUSES = frozenset(
    {BookStatus.PREVIEW_READY, BookStatus.PAID, BookStatus.COMPLETED, BookStatus.FAILED}
)


class AgeBand(str, Enum):
    """Reader age band, drives vocabulary and sentence length."""

    AGES_3_4 = "3-4"
    AGES_5_6 = "5-6"
    AGES_7_9 = "7-9"


class Tone(str, Enum):
    """Story tone chosen by the parent."""

    GENTLE = "gentle"
    FUNNY = "funny"
    BRAVE = "brave"


class InvalidStateTransition(Exception):
    """Raised when attempting a backward book status transition."""

    pass


class Book(SQLModel, table=True):
    """Book holds the child's details, generated artifacts and lifecycle status."""

    __tablename__ = "books"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    child_name: str = Field(max_length=32)
    age_band: AgeBand
    interests: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tone: Tone
    moral_lesson: Optional[str] = Field(default=None, max_length=140)

    # Storage paths (bucket-relative object keys)
    source_photo_path: Optional[str] = Field(default=None, max_length=512)
    character_sheet_path: Optional[str] = Field(default=None, max_length=512)
    cover_image_path: Optional[str] = Field(default=None, max_length=512)

    title: Optional[str] = Field(default=None, max_length=255)
    status: BookStatus = Field(default=BookStatus.DRAFT, index=True)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)

    def mark_generating(self) -> bool:
        """Transition from draft to generating.

        Returns:
            True if the status changed, False if the book was already generating

        Raises:
            InvalidStateTransition: If the book has already reached a terminal status
        """
        if self.status == BookStatus.GENERATING:
            return False
        if self.status != BookStatus.DRAFT:
            raise InvalidStateTransition(
                f"Cannot mark generating from {self.status.value}. Book must be in draft state."
            )
        self.status = BookStatus.GENERATING
        self.updated_at = utc_now()
        return True

    def mark_preview_ready(self) -> None:
        """Transition from generating (or draft) to preview_ready.

        Raises:
            InvalidStateTransition: If the book has already reached a terminal status
        """
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark preview_ready from terminal state {self.status.value}."
            )
        self.status = BookStatus.PREVIEW_READY
        self.error_message = None
        self.updated_at = utc_now()

    def mark_failed(self, error_message: str) -> None:
        """Transition from any non-terminal state to failed.

        Args:
            error_message: User-facing failure description (truncated to 1000 characters)

        Raises:
            InvalidStateTransition: If current status is already terminal
        """
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        self.status = BookStatus.FAILED
        self.error_message = error_message[:1000]
        self.updated_at = utc_now()
