"""
Templates router - badge template catalog.

Endpoints:
- GET /api/templates               template ids under BADGE_TEMPLATES_DIR
- GET /api/templates/{template_id} text boxes and background of one template
"""

from fastapi import APIRouter

from src.print_queue.errors import PrintQueueError

from ..errors import to_http_exception
from ..schemas.catalog import TemplateInfo, TemplateListResponse
from .._queue_state import get_queue_service


router = APIRouter()


@router.get("", response_model=TemplateListResponse)
def list_templates():
    templates = get_queue_service().renderer.list_templates()
    return TemplateListResponse(templates=templates, count=len(templates))


@router.get("/{template_id}", response_model=TemplateInfo)
def get_template(template_id: str):
    """404 for an unknown template, 400 for an invalid id or template.json."""
    try:
        template = get_queue_service().renderer.load_template(template_id)
    except PrintQueueError as e:
        raise to_http_exception(e) from e

    return TemplateInfo(**template.to_dict())
