"""
Retry Controller for the print queue.

- Decides between requeue-with-backoff and permanent failure
- Owns the deferred "back to the queue" timers
- Validates and applies manual retries

What RetryController MUST NOT do:
- Claim or execute jobs (Dispatcher's responsibility)
- Touch the dispatcher's in-flight claim
"""

import logging
import threading
from typing import Callable, Optional

from .entities import Job, JobStatus, iso_after
from .errors import (
    JobNotFoundError,
    JobNotRetryableError,
    RetryLimitExceededError,
)
from .events import (
    EventBus,
    JobFailed,
    JobRetried,
    JobRetryScheduled,
    JobStatusChanged,
    SchedulerError,
)
from .persistence import JobStore


logger = logging.getLogger(__name__)


DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_SECONDS = 1.0


class RetryController:
    """
    Manages automatic and manual retry logic.

    Automatic retry:
        retry_count is incremented on every failed attempt. While it stays
        below max_retries the job goes back to the queue after

            delay = base_delay * 2 ** (retry_count - 1)

        e.g. with a 1s base: 1s -> 2s -> 4s. Otherwise the job is FAILED.

    Backoff window:
        The job is stored as QUEUED with a retry_after gate, so the
        dispatcher cannot claim it early and it keeps its place in the
        created_at order. A timer releases the gate when the window ends.
    """

    def __init__(
        self,
        store: JobStore,
        events: EventBus,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
    ):
        """
        Initialize RetryController.

        Args:
            store: JobStore for job records
            events: EventBus for notifications
            max_retries: Failed attempts before a job is permanently failed
            base_delay_seconds: Base delay for exponential backoff
        """
        self.store = store
        self.events = events
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds

        self._lock = threading.Lock()
        self._timers: dict[str, threading.Timer] = {}
        self._delays: dict[str, float] = {}

        self._on_retry_ready: Optional[Callable[[Job], None]] = None
        self._on_queue_changed: Optional[Callable[[], None]] = None

    def set_on_retry_ready(self, callback: Callable[[Job], None]) -> None:
        """Set callback fired when a backoff window ends (used to wake the dispatcher)."""
        self._on_retry_ready = callback

    def set_on_queue_changed(self, callback: Callable[[], None]) -> None:
        """Set callback used to broadcast a fresh queue snapshot."""
        self._on_queue_changed = callback

    # =========================================================================
    # Policy
    # =========================================================================

    def calculate_backoff(self, retry_count: int) -> float:
        """
        Calculate exponential backoff delay.

        Formula: delay = base_delay * 2 ^ (retry_count - 1)
        The first retry waits exactly base_delay.
        """
        return self.base_delay_seconds * (2 ** max(retry_count - 1, 0))

    def should_retry(self, job: Job) -> bool:
        return job.retry_count < self.max_retries

    # =========================================================================
    # Automatic retry
    # =========================================================================

    def on_attempt_failed(self, job: Job, error: BaseException) -> Job:
        """
        Handle a failed execution attempt.

        Called by Dispatcher while the claim for `job` is still current.

        Returns:
            The job as persisted: QUEUED with a backoff gate, or FAILED
        """
        updated = self.store.increment_retry_count(job.id)

        logger.info(
            f"Job {job.id} attempt failed "
            f"({updated.retry_count}/{self.max_retries}): {error}"
        )

        if self.should_retry(updated):
            delay = self.calculate_backoff(updated.retry_count)
            updated = self.store.schedule_retry(job.id, iso_after(delay))
            self._arm_timer(updated.id, delay)

            logger.info(f"Job {job.id} will retry in {delay:g}s")
            self.events.publish(
                JobRetryScheduled(job=updated, delay_seconds=delay, error=error)
            )
            return updated

        failed = self.store.update_status(
            job.id,
            JobStatus.FAILED,
            error_message=str(error) or type(error).__name__,
        )
        logger.warning(
            f"Job {job.id} permanently failed after {failed.retry_count} attempts: {error}"
        )
        self.events.publish(JobStatusChanged(job=failed))
        self.events.publish(JobFailed(job=failed, error=error))
        return failed

    def _arm_timer(self, job_id: str, delay: float) -> None:
        timer = threading.Timer(delay, self._release, args=(job_id,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(job_id, None)
            if previous is not None:
                previous.cancel()
            self._timers[job_id] = timer
            self._delays[job_id] = delay
        timer.start()

    def _release(self, job_id: str) -> None:
        """Timer callback: open the backoff gate."""
        with self._lock:
            self._timers.pop(job_id, None)
            self._delays.pop(job_id, None)

        try:
            job = self.store.release_retry(job_id)
        except Exception as e:
            logger.error(f"Failed to release retry for job {job_id}: {e}", exc_info=True)
            self.events.publish(SchedulerError(error=e, job_id=job_id))
            return

        if job is None:
            logger.debug(f"Retry for job {job_id} no longer pending")
            return

        logger.info(f"Job {job_id} back in queue (retry {job.retry_count})")
        self.events.publish(JobStatusChanged(job=job))
        if self._on_queue_changed is not None:
            self._on_queue_changed()
        if self._on_retry_ready is not None:
            self._on_retry_ready(job)

    def cancel_pending(self, job_id: str) -> bool:
        """
        Disarm the backoff timer of a job, if any.

        Returns:
            True if a timer was pending
        """
        with self._lock:
            timer = self._timers.pop(job_id, None)
            self._delays.pop(job_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    @property
    def pending_retries(self) -> dict[str, float]:
        """Job IDs waiting for their backoff window, with the scheduled delay."""
        with self._lock:
            return dict(self._delays)

    def shutdown(self) -> None:
        """Cancel all timers. Gated jobs stay claimable once retry_after passes."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._delays.clear()
        for timer in timers:
            timer.cancel()

    # =========================================================================
    # Manual retry
    # =========================================================================

    def check_manual_retry(self, job_id: str) -> Job:
        """
        Validate a manual retry request without changing anything.

        Raises:
            JobNotFoundError: If the job does not exist
            JobNotRetryableError: If the job is not FAILED
            RetryLimitExceededError: If retry_count >= max_retries
        """
        job = self.store.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status != JobStatus.FAILED:
            raise JobNotRetryableError(job_id, job.status.value)

        if job.retry_count >= self.max_retries:
            raise RetryLimitExceededError(job_id, self.max_retries)

        return job

    def manual_retry(self, job_id: str) -> Job:
        """
        Put a failed job back in the queue.

        retry_count is left unchanged; it only moves on a failed attempt.
        """
        self.check_manual_retry(job_id)

        job = self.store.update_status(job_id, JobStatus.QUEUED)

        logger.info(f"Manual retry queued for job {job_id}")
        self.events.publish(JobStatusChanged(job=job))
        self.events.publish(JobRetried(job=job))
        return job
