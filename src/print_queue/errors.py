"""
Print queue exceptions.

Grouped the way callers handle them:
- Admission errors: rejected at submission, no job created
- Execution errors: recovered by retry/backoff, then surfaced as a failed job
- Control errors: returned from cancel/retry/intervention, no state mutation
"""


class PrintQueueError(Exception):
    """Base exception for all print queue errors."""
    pass


# =============================================================================
# Admission
# =============================================================================


class CapacityExceededError(PrintQueueError):
    """Raised when the active set is already at max_queue_size."""

    def __init__(self, max_queue_size: int):
        self.max_queue_size = max_queue_size
        super().__init__(
            f"Queue is at maximum capacity ({max_queue_size} jobs)"
        )


class DuplicateUIDError(PrintQueueError):
    """Raised when the uid already belongs to a queued or processing job."""

    def __init__(self, uid: str):
        self.uid = uid
        super().__init__(f"UID '{uid}' is already in use by an active job")


# =============================================================================
# Execution
# =============================================================================


class ExecutionError(PrintQueueError):
    """Base class for failures of a single execution attempt."""
    pass


class RenderError(ExecutionError):
    """Raised when a badge image cannot be produced."""
    pass


class TemplateNotFoundError(RenderError):
    """Raised when no template directory exists for a template id."""
    pass


class PrintError(ExecutionError):
    """Raised when the printer rejects or fails a document."""
    pass


class ProcessingTimeoutError(ExecutionError):
    """Synthetic failure used when an attempt outlives its deadline."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Job processing timeout after {timeout_seconds:g}s"
        )


# =============================================================================
# Control
# =============================================================================


class JobNotFoundError(PrintQueueError):
    """Raised when a requested job does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobNotCancelableError(PrintQueueError):
    """Raised when cancelling a completed job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Cannot cancel a completed job: {job_id}")


class JobNotRetryableError(PrintQueueError):
    """Raised when retrying a job that is not failed."""

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(
            f"Only failed jobs can be retried (job {job_id} is {status})"
        )


class RetryLimitExceededError(PrintQueueError):
    """Raised when a manual retry would exceed max_retries."""

    def __init__(self, job_id: str, max_retries: int):
        self.job_id = job_id
        self.max_retries = max_retries
        super().__init__(
            f"Job {job_id} has exceeded maximum retry attempts ({max_retries})"
        )


class InvalidOperationError(PrintQueueError):
    """
    Raised when an operation violates queue invariants.

    Examples:
    - Manual intervention on a queued or completed job
    - Unknown intervention action
    """
    pass


class ConcurrencyViolationError(PrintQueueError):
    """
    Raised when a conditional update finds the job in an unexpected status.

    Used by the atomic claim: the job was claimed, finalised or requeued by
    someone else between the read and the write.
    """

    def __init__(self, job_id: str, expected_status: str, actual_status: str):
        self.job_id = job_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Concurrency violation for job {job_id}: "
            f"expected status '{expected_status}', got '{actual_status}'"
        )
