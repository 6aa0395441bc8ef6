from __future__ import annotations

import json as _json
import math
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sse_starlette.sse import EventSourceResponse

from profile_scout.api.deps import get_scheduler
from profile_scout.errors import JobNotFoundError, ProfileValidationError
from profile_scout.models.jobs import JobStatus
from profile_scout.models.schemas import (
    CancelResponse,
    JobListResponse,
    JobStatusResponse,
    JobSubmitResponse,
    Pagination,
)
from profile_scout.services import logger as log_service
from profile_scout.services import streaming
from profile_scout.services.scheduler import JobScheduler

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def _status_url(job_id: str) -> str:
    return f"{router.prefix}/{job_id}"


@router.post("", response_model=JobSubmitResponse, status_code=202)
async def submit_job(
    payload: dict[str, Any] = Body(...),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    """Queue a research job, or return the cached result for an identical profile."""
    try:
        outcome = await scheduler.submit(payload)
    except ProfileValidationError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors})
    return JobSubmitResponse(
        job_id=outcome.job_id,
        status=outcome.status,
        status_url=_status_url(outcome.job_id),
        cached=outcome.cached,
        result=outcome.result,
    )


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    jobs, total = scheduler.list_jobs(
        status=status.value if status else None, page=page, limit=limit
    )
    return JobListResponse(
        jobs=[job.to_summary() for job in jobs],
        pagination=Pagination(
            total=total, page=page, limit=limit, pages=math.ceil(total / limit) if total else 0
        ),
    )


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str, scheduler: JobScheduler = Depends(get_scheduler)):
    try:
        return scheduler.get(job_id).to_status()
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")


@router.delete("/{job_id}", response_model=CancelResponse)
async def cancel_job(job_id: str, scheduler: JobScheduler = Depends(get_scheduler)):
    try:
        job = await scheduler.delete(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    message = "Job removed"
    if job.status is JobStatus.ACTIVE:
        message = "Job removed; the running attempt will finish and close its session"
    return CancelResponse(message=message, job_id=job_id)


@router.get("/{job_id}/stream")
async def stream_job(job_id: str, scheduler: JobScheduler = Depends(get_scheduler)):
    """SSE feed of the job's event log, following live events until it finishes."""
    try:
        scheduler.get(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")

    async def event_generator():
        try:
            async for entry in scheduler.stream(job_id):
                yield {
                    "id": str(entry["seq"]),
                    "event": entry["event"],
                    "data": _json.dumps(entry["data"]),
                }
        except JobNotFoundError:
            error_event = streaming.error("Job was removed while streaming")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.data),
            }
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in job stream",
                error=str(e),
                job_id=job_id,
            )
            error_event = streaming.error("Job stream failed unexpectedly.")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.data),
            }

    return EventSourceResponse(event_generator())
