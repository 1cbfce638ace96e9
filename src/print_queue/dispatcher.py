"""
Dispatcher for the print queue.

- Pulls the oldest claimable job and claims it atomically
- Runs the render/print attempt on a worker thread, bounded by a deadline
- Hands failures to RetryController
- Single printer: at most one claim at any time

What Dispatcher MUST NOT do:
- Decide retry/backoff policy (RetryController's responsibility)
- Admit, cancel or manually retry jobs (PrintQueueService's responsibility)
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

from .entities import Job, JobStatus
from .errors import (
    ConcurrencyViolationError,
    JobNotFoundError,
    ProcessingTimeoutError,
)
from .events import EventBus, JobStatusChanged, SchedulerError
from .persistence import JobStore
from .retry_controller import RetryController


logger = logging.getLogger(__name__)


DEFAULT_PROCESSING_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_ERROR_BACKOFF = 1.0

# Attempt threads. A hung print call keeps its thread after the deadline.
ATTEMPT_WORKERS = 4


class DispatcherState(str, Enum):
    """Dispatcher lifecycle states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


class RendererProtocol(Protocol):
    def render(self, template_id: str, uid: str, badge_name: str) -> bytes:
        ...


class PrinterProtocol(Protocol):
    def print(self, document_path: str) -> None:
        ...


class Claim:
    """
    The dispatcher's single in-flight job.

    A claim is current while Dispatcher._claim points at it. Anything that
    finishes late (an attempt past its deadline, an attempt for a cancelled
    job) finds its claim no longer current and is discarded.
    """

    def __init__(self, job_id: str, generation: int, timeout: float):
        self.job_id = job_id
        self.generation = generation
        self.deadline = time.monotonic() + timeout
        self.job: Optional[Job] = None
        self.future: Optional[Future] = None
        self.settled = threading.Event()
        self.abandoned = False

    def remaining(self) -> float:
        return max(self.deadline - time.monotonic(), 0.0)

    def is_stale(self) -> bool:
        return self.abandoned or self.remaining() <= 0.0

    def cancel_attempt(self) -> None:
        """Cancel the attempt if it has not started yet."""
        if self.future is not None and self.future.cancel():
            logger.info(f"Cancelled pending attempt for job {self.job_id}")

    def __repr__(self) -> str:
        return f"Claim(job_id={self.job_id!r}, generation={self.generation})"


class Dispatcher:
    """
    Pulls jobs from the queue and prints them one at a time.

    Key behaviors:
    1. A claim is in flight -> do nothing
    2. JobStore.next_queued() -> None means idle until woken or poll_interval
    3. Register the claim, then JobStore.claim() (queued -> processing).
       A lost race drops the claim and picks the next job immediately.
    4. Render + print on an attempt thread, waiting no longer than the deadline
    5. Success -> COMPLETED; failure or timeout -> RetryController
    """

    def __init__(
        self,
        store: JobStore,
        renderer: RendererProtocol,
        printer: PrinterProtocol,
        retry_controller: RetryController,
        events: EventBus,
        work_dir: str | Path,
        processing_timeout: float = DEFAULT_PROCESSING_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
    ):
        """
        Initialize Dispatcher.

        Args:
            store: JobStore for job records
            renderer: Produces PNG bytes for a job
            printer: Sends a document to the printer
            retry_controller: Handles failed attempts
            events: EventBus for notifications
            work_dir: Directory for temporary badge images
            processing_timeout: Seconds an attempt may run before it is failed
            poll_interval: Seconds between queue polls when idle
            error_backoff: Seconds to pause after an unexpected loop error
        """
        self.store = store
        self.renderer = renderer
        self.printer = printer
        self.retry_controller = retry_controller
        self.events = events
        self.work_dir = Path(work_dir)
        self.processing_timeout = processing_timeout
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff

        self._state = DispatcherState.STOPPED
        self._lock = threading.Lock()
        self._claim: Optional[Claim] = None
        self._generation = 0
        self._thread: Optional[threading.Thread] = None
        self._pool: Optional[ThreadPoolExecutor] = None
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()

        # Callback used to broadcast a fresh queue snapshot
        self._on_queue_changed: Optional[Callable[[], None]] = None

    @property
    def state(self) -> DispatcherState:
        """Get current dispatcher state."""
        return self._state

    @property
    def current_job(self) -> Optional[Job]:
        """Get the job currently being printed, if any."""
        with self._lock:
            return self._claim.job if self._claim is not None else None

    def set_on_queue_changed(self, callback: Callable[[], None]) -> None:
        self._on_queue_changed = callback

    def _notify_queue_changed(self) -> None:
        if self._on_queue_changed is not None:
            self._on_queue_changed()

    # =========================================================================
    # Claim bookkeeping
    # =========================================================================

    def _begin_claim(self, job_id: str) -> Optional[Claim]:
        with self._lock:
            if self._claim is not None:
                return None
            self._generation += 1
            claim = Claim(job_id, self._generation, self.processing_timeout)
            self._claim = claim
            return claim

    def _detach(self, claim: Claim) -> bool:
        """Clear `claim` if it is still current. False means it was abandoned."""
        with self._lock:
            if self._claim is not claim:
                return False
            self._claim = None
            return True

    def _clear_claim(self) -> None:
        with self._lock:
            self._claim = None

    def abandon(self, job_id: str) -> bool:
        """
        Drop the in-flight claim for `job_id`.

        A pending attempt is cancelled. A running one is not interrupted;
        its outcome is discarded.

        Returns:
            True if `job_id` was in flight
        """
        with self._lock:
            claim = self._claim
            if claim is None or claim.job_id != job_id:
                return False
            claim.abandoned = True
            self._claim = None

        claim.cancel_attempt()
        claim.settled.set()
        logger.info(f"Abandoned in-flight job {job_id} (generation {claim.generation})")
        return True

    # =========================================================================
    # Single Dispatch Operation
    # =========================================================================

    def dispatch_one(self) -> Optional[Job]:
        """
        Attempt to dispatch a single job and wait for its outcome.

        Returns:
            The dispatched job as last seen, or None if nothing was dispatched
        """
        while True:
            with self._lock:
                if self._claim is not None:
                    logger.debug("Already printing a job, skipping dispatch")
                    return None

            next_job = self.store.next_queued()
            if next_job is None:
                logger.debug("Queue is empty")
                return None

            claim = self._begin_claim(next_job.id)
            if claim is None:
                return None

            try:
                job = self.store.claim(next_job.id)
            except (JobNotFoundError, ConcurrencyViolationError) as e:
                self._detach(claim)
                logger.warning(f"Lost claim on job {next_job.id}: {e}")
                continue

            with self._lock:
                if self._claim is not claim:
                    # Cancelled between the claim and now
                    return job
                claim.job = job

            logger.info(
                f"Dispatched job {job.id} (uid={job.uid}, template={job.template_id}, "
                f"retry_count={job.retry_count})"
            )
            self.events.publish(JobStatusChanged(job=job))
            self._notify_queue_changed()

            return self._run_claim(claim, job)

    def _run_claim(self, claim: Claim, job: Job) -> Job:
        future = self._get_pool().submit(self._attempt, claim, job)
        with self._lock:
            claim.future = future
            abandoned = claim.abandoned
        if abandoned:
            claim.cancel_attempt()
        future.add_done_callback(lambda f: claim.settled.set())

        settled = claim.settled.wait(timeout=claim.remaining())

        if not self._detach(claim):
            logger.info(f"Discarding outcome of abandoned job {job.id}")
            return job

        error = self._outcome(claim, settled)

        try:
            if error is None:
                job = self.store.update_status(job.id, JobStatus.COMPLETED)
                logger.info(f"Job {job.id} completed")
                self.events.publish(JobStatusChanged(job=job))
            else:
                job = self.retry_controller.on_attempt_failed(job, error)
        except JobNotFoundError:
            logger.info(f"Job {job.id} was cancelled while finishing")

        self._notify_queue_changed()
        return job

    def _outcome(self, claim: Claim, settled: bool) -> Optional[BaseException]:
        future = claim.future
        if not settled or not future.done():
            claim.cancel_attempt()
            logger.warning(
                f"Attempt exceeded processing timeout ({self.processing_timeout:g}s)"
            )
            return ProcessingTimeoutError(self.processing_timeout)
        return future.exception()

    def _attempt(self, claim: Claim, job: Job) -> None:
        """Render the badge, write it to the work dir, print it, clean up."""
        image = self.renderer.render(job.template_id, job.uid, job.badge_name)

        # Nothing reaches the printer once the claim is abandoned or past its deadline
        if claim.is_stale():
            logger.info(f"Skipping print for stale attempt on job {job.id}")
            raise ProcessingTimeoutError(self.processing_timeout)

        self.work_dir.mkdir(parents=True, exist_ok=True)
        path = self.work_dir / f"badge_{job.id}_{int(time.time() * 1000)}.png"
        path.write_bytes(image)

        try:
            self.printer.print(str(path))
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove temp file {path}: {e}")

    def _get_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=ATTEMPT_WORKERS,
                thread_name_prefix="print-attempt",
            )
        return self._pool

    # =========================================================================
    # Dispatch Loop
    # =========================================================================

    def wake(self) -> None:
        """Re-check the queue now instead of after poll_interval."""
        self._wake_event.set()

    def start(self, blocking: bool = False) -> None:
        """
        Start the dispatch loop.

        Args:
            blocking: If True, run in current thread. If False, run in background.
        """
        if self._state != DispatcherState.STOPPED:
            raise RuntimeError(f"Cannot start dispatcher in {self._state.value} state")

        self._stop_event.clear()
        self._state = DispatcherState.RUNNING

        if blocking:
            self._dispatch_loop()
        else:
            self._thread = threading.Thread(
                target=self._dispatch_loop,
                name="print-dispatcher",
                daemon=True,
            )
            self._thread.start()

    def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the dispatch loop.

        The in-flight attempt is allowed to finish within `timeout`.
        """
        if self._state == DispatcherState.STOPPED:
            self._shutdown_pool()
            return

        logger.info("Stopping dispatcher...")
        self._state = DispatcherState.STOPPING
        self._stop_event.set()
        self._wake_event.set()

        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Dispatcher thread did not stop within timeout")
            self._thread = None

        self._shutdown_pool()

        self._state = DispatcherState.STOPPED
        logger.info("Dispatcher stopped")

    def _shutdown_pool(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None

    def _dispatch_loop(self) -> None:
        """Main dispatch loop."""
        logger.info("Dispatcher loop started")

        while not self._stop_event.is_set():
            self._wake_event.clear()
            try:
                result = self.dispatch_one()

                if result is None:
                    self._wake_event.wait(self.poll_interval)
                # If a job was dispatched, immediately check for next

            except Exception as e:
                job = self.current_job
                self._clear_claim()
                logger.error(f"Error in dispatch loop: {e}", exc_info=True)
                self.events.publish(
                    SchedulerError(error=e, job_id=job.id if job else None)
                )
                self._stop_event.wait(self.error_backoff)

        self._state = DispatcherState.STOPPED
        logger.info("Dispatcher loop ended")

    def is_running(self) -> bool:
        """Check if dispatcher is running."""
        return self._state == DispatcherState.RUNNING

    def is_busy(self) -> bool:
        """Check if dispatcher is printing a job."""
        with self._lock:
            return self._claim is not None
