"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .queue import (
    BadgeSubmitRequest,
    JobResponse,
    JobActionResponse,
    QueueCapacityResponse,
    QueueStatusResponse,
    PaginationInfo,
    JobHistoryResponse,
    InterventionRequest,
    InterventionInfo,
    InterventionResponse,
)
from .catalog import (
    TextBoxInfo,
    TemplateInfo,
    TemplateListResponse,
    PrinterStatusResponse,
    PrinterListResponse,
    PresetInfo,
    PresetListResponse,
    PrinterTestResponse,
)

__all__ = [
    "BadgeSubmitRequest",
    "JobResponse",
    "JobActionResponse",
    "QueueCapacityResponse",
    "QueueStatusResponse",
    "PaginationInfo",
    "JobHistoryResponse",
    "InterventionRequest",
    "InterventionInfo",
    "InterventionResponse",
    "TextBoxInfo",
    "TemplateInfo",
    "TemplateListResponse",
    "PrinterStatusResponse",
    "PrinterListResponse",
    "PresetInfo",
    "PresetListResponse",
    "PrinterTestResponse",
]
