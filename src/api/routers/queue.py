"""
Queue router - live queue state, cancellation and manual retry.
"""

from fastapi import APIRouter

from src.print_queue.errors import PrintQueueError

from ..errors import to_http_exception
from ..schemas.queue import (
    JobActionResponse,
    JobResponse,
    QueueCapacityResponse,
    QueueStatusResponse,
)
from .._queue_state import get_queue_service


router = APIRouter()


@router.get("", response_model=QueueStatusResponse)
def get_queue_status():
    """
    Get the current queue snapshot.

    Returns per-status counts, active jobs in print order, the job being
    printed, pending backoff retries and capacity.
    """
    service = get_queue_service()

    status = service.status()
    capacity = service.capacity()

    return QueueStatusResponse(
        counts=status.counts,
        active_jobs=[JobResponse.from_job(job) for job in status.active_jobs],
        current_job=JobResponse.from_job(status.current_job) if status.current_job else None,
        is_processing=status.is_processing,
        pending_retries=status.pending_retries,
        capacity=QueueCapacityResponse(**capacity.to_dict()),
    )


@router.get("/capacity", response_model=QueueCapacityResponse)
def get_queue_capacity():
    """Get current capacity figures."""
    return QueueCapacityResponse(**get_queue_service().capacity().to_dict())


@router.delete("/{job_id}", response_model=JobActionResponse)
def cancel_job(job_id: str):
    """
    Cancel a job and remove it from the queue.

    A job that is printing is released; the physical print is not aborted.
    Completed jobs cannot be cancelled.
    """
    service = get_queue_service()

    try:
        job = service.cancel(job_id)
    except PrintQueueError as e:
        raise to_http_exception(e) from e

    return JobActionResponse(
        message="Job cancelled successfully",
        job=JobResponse.from_job(job),
    )


@router.post("/{job_id}/retry", response_model=JobActionResponse)
def retry_job(job_id: str):
    """
    Put a failed job back in the queue.

    Only failed jobs below the retry limit can be retried.
    """
    service = get_queue_service()

    try:
        job = service.retry(job_id)
    except PrintQueueError as e:
        raise to_http_exception(e) from e

    return JobActionResponse(
        message="Job queued for retry",
        job=JobResponse.from_job(job),
    )
