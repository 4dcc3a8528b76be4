"""Book creation and status polling endpoints.

- POST /api/books - create a draft book and queue its generation job
- GET /api/books/{book_id} - poll status; preview URLs appear once preview_ready
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from bedtime.api.dependencies import get_settings, get_store, get_uow_factory
from bedtime.core.config import Settings
from bedtime.services.books import (
    BookStatusResponse,
    CreateBookRequest,
    CreateBookResponse,
    enqueue_book,
    get_book_status,
)
from bedtime.services.exceptions import BookAlreadyExistsError, BookNotFoundError
from bedtime.services.storage.artifact_store import ArtifactStore

logger = structlog.get_logger()
router = APIRouter(prefix="/api/books", tags=["books"])


@router.post(
    "",
    response_model=CreateBookResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_book(
    request: CreateBookRequest,
    uow_factory=Depends(get_uow_factory),
    settings: Settings = Depends(get_settings),
) -> CreateBookResponse:
    """Create a book and its queued job in one transaction.

    HTTP Status Codes:
        201: Book created, generation queued
        409: Book id already exists
        422: Validation failed
    """
    try:
        async with await uow_factory() as uow:
            response = await enqueue_book(uow, request, max_attempts=settings.job_max_attempts)
    except BookAlreadyExistsError as e:
        logger.warning("book.duplicate", book_id=str(request.book_id))
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return response


@router.get("/{book_id}", response_model=BookStatusResponse)
async def read_book_status(
    book_id: str,
    uow_factory=Depends(get_uow_factory),
    store: ArtifactStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> BookStatusResponse:
    """Return the public status of a book.

    HTTP Status Codes:
        200: Status returned
        400: book_id is not a UUID
        404: Book not found
    """
    try:
        parsed_id = UUID(book_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid book ID format")

    try:
        async with await uow_factory() as uow:
            return await get_book_status(
                uow, store, parsed_id, signed_url_ttl=settings.signed_url_ttl_seconds
            )
    except BookNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
