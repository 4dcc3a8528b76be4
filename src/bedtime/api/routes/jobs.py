"""Admin trigger for the book job processor.

POST /api/jobs/process-next claims one job and runs one step. Schedulers call
it on an interval; operators call it with a specific job id to unstick a book.

HTTP Status Codes:
    200: A step was attempted (the body's `error` may still be set)
    204: No queued job could be claimed
    401: Missing or invalid admin key
    500: The processor itself crashed before recording an outcome
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from bedtime.api.dependencies import get_processor, get_settings, require_admin_key
from bedtime.core.config import Settings
from bedtime.workers.job_processor import JobProcessor, ProcessResult

logger = structlog.get_logger()
router = APIRouter(
    prefix="/api/jobs", tags=["jobs"], dependencies=[Depends(require_admin_key)]
)


class ProcessNextRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: UUID | None = Field(
        default=None,
        alias="jobId",
        description="Process this job instead of the oldest queued one",
    )
    drain: bool = Field(
        default=False,
        description="Keep running steps of the same job while it has more work",
    )


@router.post("/process-next")
async def process_next_job(
    body: ProcessNextRequest | None = None,
    processor: JobProcessor = Depends(get_processor),
    settings: Settings = Depends(get_settings),
):
    """Run one step (or, with `drain`, several steps of one job)."""
    request = body or ProcessNextRequest()

    try:
        result = await processor.process_next(request.job_id)
        steps_processed = 1 if result.processed else 0
        while request.drain and result.has_more and steps_processed < settings.max_steps_per_request:
            next_result = await processor.process_next(result.job_id)
            if not next_result.processed:
                break
            result = next_result
            steps_processed += 1
    except Exception as e:
        logger.error(
            "jobs.process_next.crashed",
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"processed": False, "error": f"Processor error: {e}"},
        )

    if steps_processed == 0:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return JSONResponse(content=_result_body(result, steps_processed))


def _result_body(result: ProcessResult, steps_processed: int) -> dict:
    return {**result.to_dict(), "stepsProcessed": steps_processed}
