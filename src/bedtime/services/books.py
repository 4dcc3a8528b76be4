"""Book enqueue and status read paths.

`enqueue_book` is the single producer of jobs: it inserts the draft book and
its queued job in one transaction. `get_book_status` is the polling view; it
only exposes signed preview URLs once the book is `preview_ready` and never
returns raw storage paths.
"""

import re
from datetime import datetime
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError

from bedtime.models.book import AgeBand, Book, BookStatus, Tone
from bedtime.models.book_job import DEFAULT_MAX_ATTEMPTS, BookJob, JobStatus, JobStep
from bedtime.models.book_page import FIRST_CONTENT_PAGE_NUMBER
from bedtime.services.exceptions import BookAlreadyExistsError, BookNotFoundError
from bedtime.services.storage.artifact_store import ArtifactStore
from bedtime.uow import UnitOfWork

logger = structlog.get_logger(__name__)

CHILD_NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")


class CreateBookRequest(BaseModel):
    """Book creation request. The photo is already in the uploads bucket.

    Accepts camelCase keys (`childName`, `ageBand`, ...) as well as field names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    book_id: UUID | None = Field(
        default=None,
        description="Client-chosen id matching the photo upload path (generated when omitted)",
    )
    child_name: str = Field(..., min_length=2, max_length=32)
    age_band: AgeBand
    interests: list[str] = Field(..., min_length=1, max_length=3)
    tone: Tone
    moral_lesson: str | None = Field(default=None, max_length=140)
    source_photo_path: str = Field(..., min_length=1, max_length=512)

    @field_validator("child_name")
    @classmethod
    def validate_child_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        if not CHILD_NAME_PATTERN.match(v):
            raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
        return v

    @field_validator("interests")
    @classmethod
    def validate_interests(cls, v: list[str]) -> list[str]:
        cleaned = [interest.strip() for interest in v]
        for interest in cleaned:
            if not 1 <= len(interest) <= 30:
                raise ValueError("Each interest must be between 1 and 30 characters")
        return cleaned

    @field_validator("moral_lesson")
    @classmethod
    def empty_lesson_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class CreateBookResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    book_id: UUID
    job_id: UUID


class BookPreview(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cover_url: str | None = None
    page1_image_url: str | None = None
    page1_text: str | None = None


class BookStatusResponse(BaseModel):
    """Public polling view of a book. Storage paths are never included."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    book_id: UUID
    status: BookStatus
    error_message: str | None = None
    created_at: datetime
    title: str | None = None
    preview: BookPreview | None = None


async def enqueue_book(
    uow: UnitOfWork, request: CreateBookRequest, max_attempts: int = DEFAULT_MAX_ATTEMPTS
) -> CreateBookResponse:
    """Insert a draft book and its queued job.

    Both rows are flushed in the caller's Unit of Work and commit together.

    Args:
        uow: Open Unit of Work
        request: Validated creation request
        max_attempts: Per-step attempt ceiling for the new job

    Returns:
        Ids of the created book and job

    Raises:
        BookAlreadyExistsError: If the book id is already taken
    """
    book_id = request.book_id or uuid4()
    if request.book_id is not None and await uow.books.get_by_id(book_id) is not None:
        raise BookAlreadyExistsError(f"Book {book_id} already exists")

    book = Book(
        id=book_id,
        child_name=request.child_name,
        age_band=request.age_band,
        interests=request.interests,
        tone=request.tone,
        moral_lesson=request.moral_lesson,
        source_photo_path=request.source_photo_path,
        status=BookStatus.DRAFT,
    )
    try:
        await uow.books.add(book)
    except IntegrityError as e:
        raise BookAlreadyExistsError(f"Book {book_id} already exists") from e

    job = await uow.jobs.add(
        BookJob(
            book_id=book.id,
            status=JobStatus.QUEUED,
            step=JobStep.CHARACTER_SHEET,
            max_attempts=max_attempts,
        )
    )

    logger.info("book.enqueued", book_id=str(book.id), job_id=str(job.id))
    return CreateBookResponse(book_id=book.id, job_id=job.id)


async def get_book_status(
    uow: UnitOfWork, store: ArtifactStore, book_id: UUID, signed_url_ttl: int | None = None
) -> BookStatusResponse:
    """Build the polling view of a book.

    Args:
        uow: Open Unit of Work
        store: Artifact store used to sign preview URLs
        book_id: Book to describe
        signed_url_ttl: Lifetime of preview URLs in seconds (store default when None)

    Raises:
        BookNotFoundError: If the book does not exist
    """
    book = await uow.books.get_by_id(book_id)
    if book is None:
        raise BookNotFoundError(f"Book {book_id} not found")

    preview = None
    if book.status.has_preview:
        page1 = await uow.pages.get(book.id, FIRST_CONTENT_PAGE_NUMBER)
        preview = BookPreview(
            cover_url=await _sign(store, book.cover_image_path, signed_url_ttl),
            page1_image_url=await _sign(
                store, page1.illustration_path if page1 else None, signed_url_ttl
            ),
            page1_text=page1.story_text if page1 else None,
        )

    return BookStatusResponse(
        book_id=book.id,
        status=book.status,
        error_message=book.error_message,
        created_at=book.created_at,
        title=book.title,
        preview=preview,
    )


async def _sign(store: ArtifactStore, path: str | None, ttl: int | None) -> str | None:
    if not path:
        return None
    return await store.create_signed_url(store.images_bucket, path, expires_in=ttl)
