"""
Mapping of print queue exceptions to HTTP errors.

- 400: badge could not be rendered (invalid template id or config, empty fields)
- 404: job or template not found
- 409: duplicate uid, not cancelable, not retryable, retry limit, invalid operation
- 503: queue at capacity
"""

from fastapi import HTTPException

from src.print_queue.errors import (
    CapacityExceededError,
    DuplicateUIDError,
    InvalidOperationError,
    JobNotCancelableError,
    JobNotFoundError,
    JobNotRetryableError,
    PrintQueueError,
    RenderError,
    RetryLimitExceededError,
    TemplateNotFoundError,
)


_STATUS_CODES = (
    (JobNotFoundError, 404, "Job not found"),
    (TemplateNotFoundError, 404, "Template not found"),
    (RenderError, 400, "Badge could not be rendered"),
    (CapacityExceededError, 503, "Queue full"),
    (DuplicateUIDError, 409, "Duplicate UID"),
    (JobNotCancelableError, 409, "Cannot cancel job"),
    (JobNotRetryableError, 409, "Cannot retry job"),
    (RetryLimitExceededError, 409, "Retry limit exceeded"),
    (InvalidOperationError, 409, "Operation not allowed"),
)


def to_http_exception(exc: PrintQueueError) -> HTTPException:
    """Build the HTTPException for a print queue error (500 if unmapped)."""
    for error_type, status_code, title in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(
                status_code=status_code,
                detail={"error": title, "message": str(exc)},
            )
    return HTTPException(
        status_code=500,
        detail={"error": "Print queue error", "message": str(exc)},
    )
