"""Integration tests for the HTTP surface.

Tests cover:
- POST /api/books - create a book and its queued job
- GET /api/books/{book_id} - status polling, preview only once ready
- POST /api/jobs/process-next - admin-authenticated step trigger
- POST /webhooks/book-jobs - shared-secret job notification
- GET /health - database connectivity
"""

from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from bedtime.app import create_app
from bedtime.models.book import BookStatus
from bedtime.models.book_job import JobStatus, JobStep
from bedtime.repositories.book_job import BookJobRepository

ADMIN_HEADERS = {"Authorization": "Bearer test-admin-key"}
WEBHOOK_HEADERS = {"X-Webhook-Secret": "test-webhook-secret"}


@pytest_asyncio.fixture
async def test_client(settings, session_factory, uow_factory, store, processor):
    """Provide AsyncClient with app.state populated the way the lifespan does."""
    app = create_app(settings)
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.store = store
    app.state.processor = processor

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def book_payload(**overrides):
    book_id = str(uuid4())
    payload = {
        "bookId": book_id,
        "childName": "Mina",
        "ageBand": "5-6",
        "interests": ["dinosaurs", "space"],
        "tone": "brave",
        "sourcePhotoPath": f"{book_id}/photo.jpg",
    }
    payload.update(overrides)
    return payload


class TestBooks:
    @pytest.mark.asyncio
    async def test_create_book_queues_job(self, test_client, uow_factory):
        payload = book_payload(moralLesson="Being brave means trying")

        response = await test_client.post("/api/books", json=payload)

        assert response.status_code == 201
        data = response.json()
        assert data["bookId"] == payload["bookId"]

        async with await uow_factory() as uow:
            job = await uow.jobs.get_by_id(UUID(data["jobId"]))
            book = await uow.books.get_by_id(UUID(data["bookId"]))
        assert job.book_id == book.id
        assert job.status == JobStatus.QUEUED
        assert job.step == JobStep.CHARACTER_SHEET
        assert job.max_attempts == 3
        assert book.status == BookStatus.DRAFT
        assert book.moral_lesson == "Being brave means trying"

    @pytest.mark.asyncio
    async def test_duplicate_book_id_conflicts(self, test_client):
        payload = book_payload()

        first = await test_client.post("/api/books", json=payload)
        second = await test_client.post("/api/books", json=payload)

        assert first.status_code == 201
        assert second.status_code == 409

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"childName": "M"},
            {"childName": "Mina123"},
            {"interests": []},
            {"interests": ["a", "b", "c", "d"]},
            {"ageBand": "10-12"},
            {"tone": "scary"},
            {"moralLesson": "x" * 141},
        ],
    )
    async def test_invalid_request_rejected(self, test_client, overrides):
        response = await test_client.post("/api/books", json=book_payload(**overrides))

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_status_invalid_id(self, test_client):
        response = await test_client.get("/api/books/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid book ID format"

    @pytest.mark.asyncio
    async def test_status_unknown_book(self, test_client):
        response = await test_client.get(f"/api/books/{uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_status_hides_preview_until_ready(self, test_client, create_book, processor):
        created = await create_book()

        await processor.process_next()
        generating = await test_client.get(f"/api/books/{created.book_id}")

        assert generating.status_code == 200
        assert generating.json()["status"] == "generating"
        assert generating.json()["preview"] is None
        assert "characterSheetPath" not in generating.json()

        await processor.process_job_to_completion(created.job_id)
        ready = (await test_client.get(f"/api/books/{created.book_id}")).json()

        assert ready["status"] == "preview_ready"
        assert ready["title"] == "Mina and the Moon Dinosaurs"
        preview = ready["preview"]
        assert preview["coverUrl"].startswith(f"https://storage.test/images/{created.book_id}/cover.png")
        assert "page_01.png" in preview["page1ImageUrl"]
        assert preview["page1Text"].startswith("Mina found")


class TestProcessNext:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "Basic test-admin-key"}],
    )
    async def test_requires_admin_key(self, test_client, headers):
        response = await test_client.post("/api/jobs/process-next", headers=headers)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_idle_returns_no_content(self, test_client):
        response = await test_client.post("/api/jobs/process-next", headers=ADMIN_HEADERS)

        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_runs_one_step(self, test_client, create_book):
        created = await create_book()

        response = await test_client.post("/api/jobs/process-next", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] is True
        assert data["jobId"] == str(created.job_id)
        assert data["step"] == "character_sheet"
        assert data["jobStatus"] == "queued"
        assert data["hasMore"] is True
        assert data["stepsProcessed"] == 1

    @pytest.mark.asyncio
    async def test_drain_runs_job_to_completion(self, test_client, create_book, uow_factory):
        created = await create_book()

        response = await test_client.post(
            "/api/jobs/process-next",
            headers=ADMIN_HEADERS,
            json={"jobId": str(created.job_id), "drain": True},
        )

        data = response.json()
        assert data["stepsProcessed"] == 4
        assert data["step"] == "page1_image"
        assert data["jobStatus"] == "completed"
        assert data["hasMore"] is False

        async with await uow_factory() as uow:
            book = await uow.books.get_by_id(created.book_id)
        assert book.status == BookStatus.PREVIEW_READY


class TestWebhook:
    @pytest.mark.asyncio
    async def test_requires_secret(self, test_client):
        response = await test_client.post("/webhooks/book-jobs", json={})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_secret(self, test_client):
        response = await test_client.post(
            "/webhooks/book-jobs", json={}, headers={"X-Webhook-Secret": "nope"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_insert_payload_processes_job(self, test_client, create_book, uow_factory):
        created = await create_book()
        payload = {
            "type": "INSERT",
            "table": "book_jobs",
            "record": {"id": str(created.job_id), "book_id": str(created.book_id)},
        }

        response = await test_client.post("/webhooks/book-jobs", json=payload, headers=WEBHOOK_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] is True
        assert data["jobId"] == str(created.job_id)
        assert data["step"] == "character_sheet"

        # The background continuation finishes before the in-process transport returns
        async with await uow_factory() as uow:
            job = await uow.jobs.get_by_id(created.job_id)
        assert job.status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_idle_is_not_an_error(self, test_client):
        response = await test_client.post("/webhooks/book-jobs", json={}, headers=WEBHOOK_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"processed": False, "message": "No queued job to claim"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        ['{"job_id": "not-a-uuid"}', "[1, 2]", "{broken"],
    )
    async def test_malformed_payload(self, test_client, body):
        response = await test_client.post(
            "/webhooks/book-jobs",
            content=body,
            headers={**WEBHOOK_HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400


@pytest.mark.asyncio
async def test_health_check(test_client):
    response = await test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestProcessorCrash:
    """A crash in the processor itself is a 500, distinct from a failed step."""

    @pytest.fixture(autouse=True)
    def broken_claim(self, monkeypatch):
        async def failing_claim(self):
            raise OperationalError("UPDATE book_jobs", {}, ConnectionRefusedError("database is down"))

        monkeypatch.setattr(BookJobRepository, "claim_next", failing_claim)

    @pytest.mark.asyncio
    async def test_process_next_returns_500(self, test_client, create_book):
        await create_book()

        response = await test_client.post("/api/jobs/process-next", headers=ADMIN_HEADERS)

        assert response.status_code == 500
        data = response.json()
        assert data["processed"] is False
        assert data["error"].startswith("Processor error:")

    @pytest.mark.asyncio
    async def test_webhook_returns_500(self, test_client, create_book):
        await create_book()

        response = await test_client.post("/webhooks/book-jobs", json={}, headers=WEBHOOK_HEADERS)

        assert response.status_code == 500
        data = response.json()
        assert data["processed"] is False
        assert "database is down" in data["error"]
