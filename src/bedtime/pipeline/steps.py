"""Generation step functions, one per job step.

Every step has two halves:

- `generate`: reads the inputs loaded at claim time, calls at most one
  generation capability and stores the artifact under a fixed object key.
  It runs outside any database transaction, so no connection is held while
  a slow model call is in flight.
- `record`: writes the artifacts returned by `generate` through a Unit of
  Work. The job processor runs it in a short transaction together with the
  step pointer advance, so a failed step leaves no partial database state.

Steps never catch generation or storage errors; classification into
retry/fail is the processor's job.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from bedtime.models.book import Book
from bedtime.models.book_job import BookJob, JobStep
from bedtime.models.book_page import (
    COVER_PAGE_NUMBER,
    FIRST_CONTENT_PAGE_NUMBER,
    BookPage,
    PageType,
)
from bedtime.services.exceptions import MissingInputError
from bedtime.services.generation import prompts
from bedtime.services.generation.capabilities import GenerationCapabilities
from bedtime.services.generation.story_parser import parse_story_response
from bedtime.services.storage.artifact_store import (
    ArtifactStore,
    character_sheet_key,
    cover_key,
    page_illustration_key,
)
from bedtime.uow import UnitOfWork

logger = structlog.get_logger(__name__)


@dataclass
class StepContext:
    """Inputs loaded when the job was claimed, plus the adapters.

    `book` and `page1` are detached snapshots; steps read them but never
    write through them.
    """

    book: Book
    page1: BookPage | None
    store: ArtifactStore
    capabilities: GenerationCapabilities


Artifacts = dict[str, Any]
StepGenerator = Callable[[StepContext], Awaitable[Artifacts]]
StepRecorder = Callable[[UnitOfWork, Book, Artifacts], Awaitable[None]]


@dataclass(frozen=True)
class StepDefinition:
    generate: StepGenerator
    record: StepRecorder


async def generate_character_sheet(ctx: StepContext) -> Artifacts:
    """Transform the uploaded photo into an illustrated character reference sheet."""
    book = ctx.book
    if not book.source_photo_path:
        raise MissingInputError(f"Book {book.id} has no source photo")

    photo = await ctx.store.download(ctx.store.uploads_bucket, book.source_photo_path)
    image = await ctx.capabilities.image.generate_image(
        prompts.character_sheet_prompt(book.child_name), reference_image=photo
    )

    path = await ctx.store.upload(ctx.store.uploads_bucket, character_sheet_key(book.id), image)
    return {"character_sheet_path": path}


async def record_character_sheet(uow: UnitOfWork, book: Book, artifacts: Artifacts) -> None:
    await uow.books.update_fields(book, character_sheet_path=artifacts["character_sheet_path"])


async def generate_story_text(ctx: StepContext) -> Artifacts:
    """Write the title and page-1 text."""
    book = ctx.book
    caps = ctx.capabilities
    messages = [
        {"role": "system", "content": prompts.story_system_prompt(book.age_band)},
        {
            "role": "user",
            "content": prompts.story_user_prompt(
                child_name=book.child_name,
                age_band=book.age_band,
                interests=list(book.interests),
                tone=book.tone,
                moral_lesson=book.moral_lesson,
            ),
        },
    ]
    raw = await caps.text.generate_text(
        messages, temperature=caps.text_temperature, max_tokens=caps.text_max_tokens
    )

    parsed = parse_story_response(raw)
    if isinstance(parsed, Exception):
        logger.warning(
            "story.parse_failed",
            book_id=str(book.id),
            error_message=str(parsed),
            raw_preview=raw[:200],
        )
        raise parsed

    return {
        "title": parsed.title,
        "page1_text": parsed.page1_text,
        "illustration_prompt": parsed.illustration_prompt,
    }


async def record_story_text(uow: UnitOfWork, book: Book, artifacts: Artifacts) -> None:
    """Store the title on the book and the text fields on page 1."""
    await uow.books.update_fields(book, title=artifacts["title"])
    await uow.pages.upsert_text(
        book.id,
        FIRST_CONTENT_PAGE_NUMBER,
        story_text=artifacts["page1_text"],
        illustration_prompt=artifacts["illustration_prompt"],
        page_type=PageType.CONTENT,
    )


async def _load_character_sheet(ctx: StepContext) -> bytes:
    path = ctx.book.character_sheet_path
    if not path:
        raise MissingInputError(f"Book {ctx.book.id} has no character sheet")
    return await ctx.store.download(ctx.store.uploads_bucket, path)


async def generate_cover_image(ctx: StepContext) -> Artifacts:
    """Illustrate a text-free cover using the character sheet as reference."""
    book = ctx.book
    sheet = await _load_character_sheet(ctx)
    image = await ctx.capabilities.image.generate_image(
        prompts.cover_prompt(book.age_band, list(book.interests), book.tone),
        reference_image=sheet,
    )

    path = await ctx.store.upload(ctx.store.images_bucket, cover_key(book.id), image)
    return {"cover_image_path": path}


async def record_cover_image(uow: UnitOfWork, book: Book, artifacts: Artifacts) -> None:
    """The cover lives on the book and as page 0."""
    path = artifacts["cover_image_path"]
    await uow.books.update_fields(book, cover_image_path=path)
    await uow.pages.upsert_illustration(
        book.id, COVER_PAGE_NUMBER, illustration_path=path, page_type=PageType.COVER
    )


async def generate_page1_image(ctx: StepContext) -> Artifacts:
    """Illustrate page 1 from its narrative."""
    book = ctx.book
    page = ctx.page1
    if page is None or not page.story_text:
        raise MissingInputError(f"Book {book.id} has no page 1 text")
    sheet = await _load_character_sheet(ctx)

    image = await ctx.capabilities.image.generate_image(
        prompts.page_illustration_prompt(
            FIRST_CONTENT_PAGE_NUMBER,
            page.story_text,
            book.tone,
            scene_description=page.illustration_prompt,
        ),
        reference_image=sheet,
    )

    path = await ctx.store.upload(
        ctx.store.images_bucket, page_illustration_key(book.id, FIRST_CONTENT_PAGE_NUMBER), image
    )
    return {"page1_illustration_path": path}


async def record_page1_image(uow: UnitOfWork, book: Book, artifacts: Artifacts) -> None:
    """Only the illustration path is written; page 1 text is left as is."""
    await uow.pages.upsert_illustration(
        book.id,
        FIRST_CONTENT_PAGE_NUMBER,
        illustration_path=artifacts["page1_illustration_path"],
        page_type=PageType.CONTENT,
    )


async def _nothing_to_generate(ctx: StepContext) -> Artifacts:
    return {}


async def _nothing_to_record(uow: UnitOfWork, book: Book, artifacts: Artifacts) -> None:
    return None


async def finalize_preview(uow: UnitOfWork, book: Book, job: BookJob) -> None:
    """No generation: the book becomes preview_ready and the job completes."""
    if not book.status.is_terminal:
        book.mark_preview_ready()
        await uow.books.save(book)
    await uow.jobs.mark_completed(job)


STEPS: dict[JobStep, StepDefinition] = {
    JobStep.CHARACTER_SHEET: StepDefinition(generate_character_sheet, record_character_sheet),
    JobStep.STORY_TEXT: StepDefinition(generate_story_text, record_story_text),
    JobStep.COVER_IMAGE: StepDefinition(generate_cover_image, record_cover_image),
    JobStep.PAGE1_IMAGE: StepDefinition(generate_page1_image, record_page1_image),
    # Reached only if a job was requeued at the final pointer; finalizes directly
    JobStep.COMPLETE: StepDefinition(_nothing_to_generate, _nothing_to_record),
}


def get_step(step: JobStep) -> StepDefinition:
    """Look up the generate/record pair for a step.

    Raises:
        KeyError: If the step has no definition
    """
    return STEPS[step]
