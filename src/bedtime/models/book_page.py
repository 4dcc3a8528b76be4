"""BookPage entity - one row per preview page."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from bedtime.core.timezone import UtcDateTime, utc_now

COVER_PAGE_NUMBER = 0
FIRST_CONTENT_PAGE_NUMBER = 1


class PageType(str, Enum):
    COVER = "cover"
    CONTENT = "content"
    BACK = "back"


class BookPage(SQLModel, table=True):
    """BookPage stores story text and illustration for a single page.

    At most one row exists per (book_id, page_number); writers upsert.
    """

    __tablename__ = "book_pages"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("book_id", "page_number", name="uq_book_pages_book_page"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    book_id: UUID = Field(foreign_key="books.id", index=True)
    page_number: int = Field(ge=0)
    page_type: PageType = Field(default=PageType.CONTENT)
    story_text: Optional[str] = Field(default=None)
    illustration_prompt: Optional[str] = Field(default=None)
    illustration_path: Optional[str] = Field(default=None, max_length=512)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
