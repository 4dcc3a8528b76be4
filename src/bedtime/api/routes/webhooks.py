"""Database change-notification webhook for book jobs.

The database sends a webhook on INSERT into book_jobs. This endpoint runs
the first step right away and schedules the remaining steps of the same job
as a background task, so the sender gets its response after one step.

Accepted payloads:
    {"type": "INSERT", "table": "book_jobs", "record": {"id": "<job id>", ...}}
    {"job_id": "<job id>"}
    {} (claim the oldest queued job)
"""

import json
from uuid import UUID

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from bedtime.api.dependencies import get_processor, validate_webhook_secret
from bedtime.workers.job_processor import JobProcessor

logger = structlog.get_logger()
router = APIRouter()


def extract_job_id(payload: dict) -> UUID | None:
    """Pick the job id out of a webhook payload.

    Raises:
        ValueError: If an id is present but is not a valid UUID
    """
    raw_id = payload.get("job_id")
    record = payload.get("record")
    if payload.get("type") == "INSERT" and isinstance(record, dict):
        raw_id = record.get("id")

    if not raw_id:
        return None
    return UUID(str(raw_id))


async def continue_job(processor: JobProcessor, job_id: UUID) -> None:
    """Background continuation: drive the job until it stops reporting more work."""
    try:
        results = await processor.process_job_to_completion(job_id)
    except Exception as e:
        logger.error(
            "webhook.continuation_failed",
            job_id=str(job_id),
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )
        return

    final = results[-1] if results else None
    logger.info(
        "webhook.continuation_finished",
        job_id=str(job_id),
        steps_processed=len(results),
        job_status=final.job_status.value if final and final.job_status else None,
    )


@router.post("/book-jobs", dependencies=[Depends(validate_webhook_secret)])
async def receive_book_job_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    processor: JobProcessor = Depends(get_processor),
):
    """Process one step of the notified job and continue the rest in the background.

    HTTP Status Codes:
        200: Step attempted, or nothing to claim (the sender must not retry)
        400: Malformed payload
        401: Missing or invalid webhook secret
        500: Processor crashed (the sender may retry)
    """
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body) if raw_body else {}
        if not isinstance(payload, dict):
            raise ValueError("payload must be a JSON object")
        job_id = extract_job_id(payload)
    except ValueError as e:
        logger.error("webhook.invalid_payload", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid webhook payload: {str(e)}",
        )

    logger.info(
        "webhook.received",
        event_type=payload.get("type"),
        job_id=str(job_id) if job_id else None,
    )

    try:
        result = await processor.process_next(job_id)
    except Exception as e:
        logger.error(
            "webhook.processing_crashed",
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"processed": False, "error": f"Processor error: {e}"},
        )

    if not result.processed:
        return {"processed": False, "message": "No queued job to claim"}

    if result.has_more and result.job_id is not None:
        background_tasks.add_task(continue_job, processor, result.job_id)

    return result.to_dict()
