"""
Print Queue Domain Entities.

- Job: One badge print request moving through the state machine
- ActiveCounts: Queued/processing totals used for capacity and admission
- QueueCapacity: Derived capacity figures
- QueueStatus: Snapshot broadcast to observers

Status values are lower-case on the wire (queued, processing, completed, failed).
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
import uuid


# Fixed-width format so that lexicographic order == chronological order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class JobStatus(str, Enum):
    """
    Job status values.

    - QUEUED: Waiting for the printer (includes jobs in a backoff window)
    - PROCESSING: Claimed by the dispatcher, rendering or printing
    - COMPLETED: Printed successfully (terminal)
    - FAILED: Retries exhausted or failed by an operator (terminal)
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.PROCESSING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def format_timestamp(moment: datetime) -> str:
    """Format an aware datetime as a UTC timestamp string."""
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def now_iso() -> str:
    """Get current time as a UTC timestamp string."""
    return format_timestamp(datetime.now(timezone.utc))


def iso_after(seconds: float) -> str:
    """Timestamp `seconds` from now."""
    return format_timestamp(datetime.now(timezone.utc) + timedelta(seconds=seconds))


@dataclass
class Job:
    """
    Single badge print request.

    Mutability rules:
    - id, template_id, uid, badge_name, created_at, seq: Immutable
    - status, retry_count, processed_at, error_message, retry_after:
      Mutated only by the scheduler (dispatcher, retry controller, service)
    """

    id: str
    template_id: str
    uid: str
    badge_name: str
    status: JobStatus = JobStatus.QUEUED
    created_at: str = field(default_factory=now_iso)
    processed_at: Optional[str] = None
    retry_count: int = 0
    error_message: Optional[str] = None
    retry_after: Optional[str] = None
    seq: int = 0

    @classmethod
    def create(cls, template_id: str, uid: str, badge_name: str) -> "Job":
        """Create a new Job with generated ID and QUEUED status."""
        return cls(
            id=generate_uuid(),
            template_id=template_id,
            uid=uid,
            badge_name=badge_name,
        )

    def is_active(self) -> bool:
        """Active jobs count toward capacity and uid uniqueness."""
        return self.status in ACTIVE_STATUSES

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_waiting_for_retry(self) -> bool:
        """True while a queued job is held back by its backoff window."""
        return self.status == JobStatus.QUEUED and self.retry_after is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "uid": self.uid,
            "badge_name": self.badge_name,
            "status": self.status.value,
            "created_at": self.created_at,
            "processed_at": self.processed_at,
            "retry_count": self.retry_count,
            "error_message": self.error_message,
            "retry_after": self.retry_after,
        }


@dataclass(frozen=True)
class ActiveCounts:
    """Counts of jobs in the active set."""

    queued: int = 0
    processing: int = 0

    @property
    def total(self) -> int:
        return self.queued + self.processing


@dataclass(frozen=True)
class QueueCapacity:
    """Derived capacity figures. Never mutates state."""

    current: int
    maximum: int

    @property
    def available(self) -> int:
        return max(self.maximum - self.current, 0)

    @property
    def percent_full(self) -> int:
        if self.maximum <= 0:
            return 100
        return round(self.current / self.maximum * 100)

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "maximum": self.maximum,
            "available": self.available,
            "percent_full": self.percent_full,
        }


@dataclass
class QueueStatus:
    """
    Point-in-time view of the queue.

    `counts` holds one entry per JobStatus value plus `total` for the active set.
    """

    counts: dict
    active_jobs: list
    current_job: Optional[Job] = None
    is_processing: bool = False
    pending_retries: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "counts": dict(self.counts),
            "active_jobs": [job.to_dict() for job in self.active_jobs],
            "current_job": self.current_job.to_dict() if self.current_job else None,
            "is_processing": self.is_processing,
            "pending_retries": dict(self.pending_retries),
        }
