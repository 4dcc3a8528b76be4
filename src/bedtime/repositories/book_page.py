"""BookPage repository for the generation pipeline.

Pages are written with UPSERT (INSERT ... ON CONFLICT DO UPDATE) on the
(book_id, page_number) unique key so that a retried step overwrites its
previous output instead of inserting a duplicate row.
"""

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from bedtime.core.timezone import utc_now
from bedtime.models.book_page import BookPage, PageType

_CONFLICT_KEY = ["book_id", "page_number"]


class BookPageRepository:
    """Repository for BookPage entities.

    Text fields and the illustration path are upserted independently: each
    upsert only lists its own columns in the DO UPDATE clause, so writing an
    illustration never touches story text and vice versa.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    def _insert(self):
        """Return the dialect-specific INSERT construct supporting ON CONFLICT."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(BookPage)
        if dialect == "sqlite":
            return sqlite.insert(BookPage)
        raise NotImplementedError(f"UPSERT not supported for dialect {dialect!r}")

    async def _upsert(
        self, book_id: UUID, page_number: int, page_type: PageType, update_values: dict[str, Any]
    ) -> None:
        now = utc_now()
        stmt = self._insert().values(
            id=uuid4(),
            book_id=book_id,
            page_number=page_number,
            page_type=page_type,
            created_at=now,
            updated_at=now,
            **update_values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=_CONFLICT_KEY,
            set_={**update_values, "page_type": page_type, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get(self, book_id: UUID, page_number: int) -> BookPage | None:
        """Retrieve a page by book and page number.

        Args:
            book_id: Parent book identifier
            page_number: Page number (0 = cover, 1 = first content page)

        Returns:
            BookPage if found, None otherwise
        """
        result = await self.session.execute(
            select(BookPage)
            .where(
                BookPage.book_id == book_id,  # type: ignore[arg-type]
                BookPage.page_number == page_number,  # type: ignore[arg-type]
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_book(self, book_id: UUID) -> list[BookPage]:
        """Retrieve all pages for a book ordered by page number."""
        result = await self.session.execute(
            select(BookPage)
            .where(BookPage.book_id == book_id)  # type: ignore[arg-type]
            .order_by(BookPage.page_number.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def upsert_text(
        self,
        book_id: UUID,
        page_number: int,
        story_text: str,
        illustration_prompt: str | None = None,
        page_type: PageType = PageType.CONTENT,
    ) -> None:
        """Insert or overwrite the text fields of a page.

        Args:
            book_id: Parent book identifier
            page_number: Page number
            story_text: Narrative text for the page
            illustration_prompt: Scene description for the illustrator (optional)
            page_type: Page type (default: content)
        """
        await self._upsert(
            book_id,
            page_number,
            page_type,
            {"story_text": story_text, "illustration_prompt": illustration_prompt},
        )

    async def upsert_illustration(
        self,
        book_id: UUID,
        page_number: int,
        illustration_path: str,
        page_type: PageType = PageType.CONTENT,
    ) -> None:
        """Insert or overwrite only the illustration path of a page.

        Args:
            book_id: Parent book identifier
            page_number: Page number
            illustration_path: Storage object key of the illustration
            page_type: Page type (default: content)
        """
        await self._upsert(
            book_id, page_number, page_type, {"illustration_path": illustration_path}
        )
