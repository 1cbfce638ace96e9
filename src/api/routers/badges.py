"""
Badges router - badge print submission and preview.

- POST /api/badges          admits one print job into the queue
- POST /api/badges/preview  renders the badge as PNG without queueing it
"""

from fastapi import APIRouter, HTTPException, Response

from src.print_queue.errors import PrintQueueError

from ..errors import to_http_exception
from ..schemas.queue import BadgeSubmitRequest, JobActionResponse, JobResponse
from .._queue_state import get_queue_service


router = APIRouter()


@router.post("", response_model=JobActionResponse, status_code=201)
def submit_badge(request: BadgeSubmitRequest):
    """
    Queue a badge for printing.

    Rejected with 503 when the queue is full and 409 when the uid already
    belongs to a queued or processing job.
    """
    service = get_queue_service()

    try:
        job = service.submit(
            template_id=request.template_id,
            uid=request.uid,
            badge_name=request.badge_name,
        )
    except PrintQueueError as e:
        raise to_http_exception(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return JobActionResponse(
        message="Badge queued for printing",
        job=JobResponse.from_job(job),
    )


@router.post(
    "/preview",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}, "description": "Rendered badge"}},
)
def preview_badge(request: BadgeSubmitRequest):
    """Render a badge with the queue's renderer. 404 for an unknown template."""
    try:
        image = get_queue_service().renderer.render(
            request.template_id, request.uid, request.badge_name
        )
    except PrintQueueError as e:
        raise to_http_exception(e) from e

    return Response(
        content=image,
        media_type="image/png",
        headers={"Cache-Control": "no-cache"},
    )
