"""
Jobs router - job lookup, history and manual intervention.

Endpoints:
- GET  /api/jobs/history                       terminal jobs, newest first
- GET  /api/jobs/{job_id}                      single job
- POST /api/jobs/{job_id}/manual-intervention  reset | fail | complete
"""

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query

from src.print_queue.entities import JobStatus, now_iso
from src.print_queue.errors import PrintQueueError

from ..errors import to_http_exception
from ..schemas.queue import (
    InterventionInfo,
    InterventionRequest,
    InterventionResponse,
    JobHistoryResponse,
    JobResponse,
    PaginationInfo,
)
from .._queue_state import get_queue_service


router = APIRouter()


@router.get("/history", response_model=JobHistoryResponse)
def get_job_history(
    status: Optional[Literal["completed", "failed"]] = Query(
        default=None, description="Only completed or only failed jobs"
    ),
    limit: int = Query(default=50, ge=1, le=100, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Jobs to skip"),
):
    """
    List completed and failed jobs, most recently processed first.
    """
    service = get_queue_service()

    jobs, total = service.history(
        status=JobStatus(status) if status else None,
        limit=limit,
        offset=offset,
    )

    return JobHistoryResponse(
        jobs=[JobResponse.from_job(job) for job in jobs],
        pagination=PaginationInfo(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        ),
    )


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str):
    """Get a specific job by ID."""
    job = get_queue_service().get_job(job_id)

    if job is None:
        raise HTTPException(
            status_code=404,
            detail=f"Job not found: {job_id}"
        )

    return JobResponse.from_job(job)


@router.post("/{job_id}/manual-intervention", response_model=InterventionResponse)
def manual_intervention(job_id: str, request: InterventionRequest):
    """
    Operator override for stuck or failed jobs.

    Allowed only while the job is processing or failed (409 otherwise).
    A processing job is released from the printer slot first.
    """
    service = get_queue_service()
    reason = request.reason or f"Manual intervention: {request.action}"

    try:
        job = service.intervene(job_id, request.action, reason=reason)
    except PrintQueueError as e:
        raise to_http_exception(e) from e

    return InterventionResponse(
        message=f"Manual intervention completed: {request.action}",
        job=JobResponse.from_job(job),
        intervention=InterventionInfo(
            action=request.action,
            reason=reason,
            timestamp=now_iso(),
        ),
    )
