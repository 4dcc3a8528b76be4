"""Book repository for the generation pipeline."""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bedtime.core.timezone import utc_now
from bedtime.models.book import Book


class BookRepository:
    """Repository for Book entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, book_id: UUID) -> Book | None:
        """Retrieve book by UUID.

        Args:
            book_id: Book's unique identifier

        Returns:
            Book if found, None otherwise
        """
        result = await self.session.execute(
            select(Book)
            .where(Book.id == book_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add(self, book: Book) -> Book:
        """Persist new book to database.

        Args:
            book: Book entity to persist

        Returns:
            Persisted book
        """
        self.session.add(book)
        await self.session.flush()
        return book

    async def update_fields(self, book: Book, **fields: Any) -> None:
        """Set artifact fields (paths, title) on a book. Last write wins.

        Args:
            book: Book entity to update
            **fields: Column names and their new values

        Raises:
            AttributeError: If a field is not a Book column
        """
        for name, value in fields.items():
            if name not in Book.model_fields:
                raise AttributeError(f"Book has no field {name!r}")
            setattr(book, name, value)
        book.updated_at = utc_now()
        self.session.add(book)
        await self.session.flush()

    async def save(self, book: Book) -> None:
        """Flush a book whose status was changed through its transition methods."""
        self.session.add(book)
        await self.session.flush()
