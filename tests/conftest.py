"""pytest fixtures for bedtime backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine: Function-scoped in-memory SQLite engine with all tables created
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- settings: Test settings (no external credentials)
- store / text_generator / image_generator: In-memory doubles for the adapters
- processor / make_processor: JobProcessor wired to the doubles
- create_book: Helper that enqueues a book exactly like POST /api/books
"""

import os

# Settings are loaded at import time by bedtime.app; configure the test
# environment before any bedtime module is imported.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")

from typing import Any, AsyncGenerator  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fakes import PHOTO_BYTES, FakeArtifactStore, FakeImageGenerator, FakeTextGenerator  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from bedtime import models  # noqa: E402, F401
from bedtime.core.config import Settings  # noqa: E402
from bedtime.services.books import CreateBookRequest, enqueue_book  # noqa: E402
from bedtime.services.generation.capabilities import GenerationCapabilities  # noqa: E402
from bedtime.uow import create_uow_factory  # noqa: E402
from bedtime.workers.job_processor import JobProcessor  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def engine():
    """Provide a fresh in-memory database per test.

    StaticPool keeps the single in-memory connection alive so every session
    created from this engine sees the same tables.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(  # type: ignore[call-arg]
        DATABASE_URL=TEST_DATABASE_URL,
        APP_ENV="test",
        ADMIN_API_KEY="test-admin-key",
        WEBHOOK_SECRET="test-webhook-secret",
        JOB_MAX_ATTEMPTS=3,
        FAIL_FAST_ON_PERMANENT_ERRORS=True,
        MAX_STEPS_PER_REQUEST=5,
        _env_file=None,
    )


@pytest.fixture
def store() -> FakeArtifactStore:
    return FakeArtifactStore()


@pytest.fixture
def text_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def make_processor(uow_factory, store, settings):
    """Build a JobProcessor with custom generation doubles."""

    def _make_processor(text=None, image=None) -> JobProcessor:
        capabilities = GenerationCapabilities(
            text=text or FakeTextGenerator(), image=image or FakeImageGenerator()
        )
        return JobProcessor(
            uow_factory=uow_factory, store=store, capabilities=capabilities, settings=settings
        )

    return _make_processor


@pytest.fixture
def processor(make_processor, text_generator, image_generator) -> JobProcessor:
    return make_processor(text=text_generator, image=image_generator)


@pytest.fixture
def create_book(uow_factory, store):
    """Enqueue a book whose photo is already in the uploads bucket."""

    async def _create_book(max_attempts: int = 3, upload_photo: bool = True, **overrides: Any):
        book_id = uuid4()
        fields: dict[str, Any] = {
            "book_id": book_id,
            "child_name": "Mina",
            "age_band": "5-6",
            "interests": ["dinosaurs", "space"],
            "tone": "brave",
            "moral_lesson": None,
            "source_photo_path": f"{book_id}/photo.jpg",
        }
        fields.update(overrides)
        request = CreateBookRequest(**fields)

        if upload_photo:
            store.objects[(store.uploads_bucket, request.source_photo_path)] = PHOTO_BYTES
        async with await uow_factory() as uow:
            return await enqueue_book(uow, request, max_attempts=max_attempts)

    return _create_book
