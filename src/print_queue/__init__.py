"""
Badge Print Queue Core Module.

Single-printer job scheduler:
- Admission with capacity and active-uid checks
- FIFO dispatch, one job in flight
- Retry with exponential backoff, processing timeout
- Cancellation, manual retry, operator intervention
- Typed events for live observers
"""

from .entities import (
    JobStatus,
    Job,
    ActiveCounts,
    QueueCapacity,
    QueueStatus,
)
from .errors import (
    PrintQueueError,
    CapacityExceededError,
    DuplicateUIDError,
    ExecutionError,
    RenderError,
    TemplateNotFoundError,
    PrintError,
    ProcessingTimeoutError,
    JobNotFoundError,
    JobNotCancelableError,
    JobNotRetryableError,
    RetryLimitExceededError,
    InvalidOperationError,
    ConcurrencyViolationError,
)
from .events import (
    EventBus,
    QueueEvent,
    JobAdded,
    JobStatusChanged,
    QueueUpdated,
    JobCancelled,
    JobFailed,
    JobRetryScheduled,
    JobRetried,
    SchedulerError,
)
from .persistence import JobStore
from .dispatcher import Dispatcher, DispatcherState
from .retry_controller import RetryController
from .service import PrintQueueService

__all__ = [
    # Entities
    "JobStatus",
    "Job",
    "ActiveCounts",
    "QueueCapacity",
    "QueueStatus",
    # Errors
    "PrintQueueError",
    "CapacityExceededError",
    "DuplicateUIDError",
    "ExecutionError",
    "RenderError",
    "TemplateNotFoundError",
    "PrintError",
    "ProcessingTimeoutError",
    "JobNotFoundError",
    "JobNotCancelableError",
    "JobNotRetryableError",
    "RetryLimitExceededError",
    "InvalidOperationError",
    "ConcurrencyViolationError",
    # Events
    "EventBus",
    "QueueEvent",
    "JobAdded",
    "JobStatusChanged",
    "QueueUpdated",
    "JobCancelled",
    "JobFailed",
    "JobRetryScheduled",
    "JobRetried",
    "SchedulerError",
    # Persistence
    "JobStore",
    # Dispatcher
    "Dispatcher",
    "DispatcherState",
    # Retry
    "RetryController",
    # Service
    "PrintQueueService",
]
