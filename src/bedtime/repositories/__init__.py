"""Repository layer for the generation pipeline.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from bedtime.repositories.book import BookRepository
from bedtime.repositories.book_job import BookJobRepository
from bedtime.repositories.book_page import BookPageRepository

__all__ = [
    "BookRepository",
    "BookPageRepository",
    "BookJobRepository",
]
