"""
Print queue API schemas.

Supports /api/badges, /api/queue/* and /api/jobs/* endpoints.
"""

import re
from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


UID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
UID_MAX_LENGTH = 50
BADGE_NAME_MAX_LENGTH = 100


# =============================================================================
# Job Schemas
# =============================================================================


class BadgeSubmitRequest(BaseModel):
    """Request to print a badge. camelCase field names are accepted too."""

    template_id: str = Field(
        ...,
        validation_alias=AliasChoices("template_id", "templateId"),
        description="Template directory name",
    )
    uid: str = Field(..., description="Badge identifier (letters, digits, '-' and '_')")
    badge_name: str = Field(
        ...,
        validation_alias=AliasChoices("badge_name", "badgeName"),
        description="Name printed on the badge",
    )

    @field_validator("template_id", "uid", "badge_name")
    @classmethod
    def strip_and_require(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("uid")
    @classmethod
    def check_uid(cls, value: str) -> str:
        if len(value) > UID_MAX_LENGTH:
            raise ValueError(f"must be {UID_MAX_LENGTH} characters or less")
        if not UID_PATTERN.match(value):
            raise ValueError("can only contain letters, numbers, hyphens, and underscores")
        return value

    @field_validator("badge_name")
    @classmethod
    def check_badge_name(cls, value: str) -> str:
        if len(value) > BADGE_NAME_MAX_LENGTH:
            raise ValueError(f"must be {BADGE_NAME_MAX_LENGTH} characters or less")
        return value


class JobResponse(BaseModel):
    """Response representing a badge job."""

    id: str = Field(..., description="Unique job identifier")
    template_id: str = Field(..., description="Template directory name")
    uid: str = Field(..., description="Badge identifier")
    badge_name: str = Field(..., description="Name printed on the badge")
    status: Literal["queued", "processing", "completed", "failed"]
    created_at: str = Field(..., description="Admission timestamp (UTC)")
    processed_at: Optional[str] = Field(default=None, description="Set once completed or failed")
    retry_count: int = Field(default=0, description="Failed attempts so far")
    error_message: Optional[str] = Field(default=None, description="Reason for permanent failure")
    retry_after: Optional[str] = Field(
        default=None,
        description="End of the backoff window while waiting to retry",
    )

    @classmethod
    def from_job(cls, job) -> "JobResponse":
        """Convert a print queue Job entity to API response."""
        return cls(**job.to_dict())


class JobActionResponse(BaseModel):
    """Response from submit, cancel and retry."""

    message: str
    job: JobResponse


# =============================================================================
# Queue Schemas
# =============================================================================


class QueueCapacityResponse(BaseModel):
    current: int = Field(..., description="Active (queued + processing) jobs")
    maximum: int = Field(..., description="Configured max_queue_size")
    available: int = Field(..., description="Remaining slots")
    percent_full: int = Field(..., description="round(current / maximum * 100)")


class QueueStatusResponse(BaseModel):
    """Snapshot of the queue."""

    counts: Dict[str, int] = Field(..., description="Jobs per status, plus active total")
    active_jobs: List[JobResponse] = Field(default_factory=list, description="FIFO order")
    current_job: Optional[JobResponse] = Field(default=None, description="Job being printed")
    is_processing: bool = Field(..., description="Whether the dispatch loop is running")
    pending_retries: Dict[str, float] = Field(
        default_factory=dict,
        description="Job ID -> backoff delay in seconds",
    )
    capacity: QueueCapacityResponse


# =============================================================================
# History / Intervention Schemas
# =============================================================================


class PaginationInfo(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class JobHistoryResponse(BaseModel):
    jobs: List[JobResponse] = Field(default_factory=list)
    pagination: PaginationInfo


class InterventionRequest(BaseModel):
    """Operator override for a stuck or failed job."""

    action: Literal["reset", "fail", "complete"] = Field(
        ...,
        description="reset: back to queued, fail: mark failed, complete: mark completed",
    )
    reason: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Stored as error message for 'fail'",
    )


class InterventionInfo(BaseModel):
    action: str
    reason: str
    timestamp: str


class InterventionResponse(BaseModel):
    message: str
    job: JobResponse
    intervention: InterventionInfo
