"""Artifact store contract and object key conventions.

Every generated artifact has a fixed object key per book, so a retried step
overwrites the previous upload instead of creating a second blob.
"""

from typing import Protocol
from uuid import UUID

PNG_CONTENT_TYPE = "image/png"


class ArtifactStore(Protocol):
    """Blob storage used by the pipeline steps and the book status read path."""

    @property
    def uploads_bucket(self) -> str: ...

    @property
    def images_bucket(self) -> str: ...

    async def upload(
        self, bucket: str, path: str, data: bytes, content_type: str = PNG_CONTENT_TYPE
    ) -> str: ...

    async def download(self, bucket: str, path: str) -> bytes: ...

    async def create_signed_url(
        self, bucket: str, path: str, expires_in: int | None = None
    ) -> str: ...


def character_sheet_key(book_id: UUID) -> str:
    return f"{book_id}/character_sheet.png"


def cover_key(book_id: UUID) -> str:
    return f"{book_id}/cover.png"


def page_illustration_key(book_id: UUID, page_number: int) -> str:
    return f"{book_id}/page_{page_number:02d}.png"
