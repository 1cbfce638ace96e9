"""
Print Queue Service - Main entry point for the badge print scheduler.

This service orchestrates all scheduler components:
- JobStore (storage)
- Dispatcher (claim / render / print loop)
- RetryController (backoff and manual retry)
- EventBus (notifications)

Usage:
    service = PrintQueueService.create(load_settings())
    service.start()
    job = service.submit("default", "A1", "Ada Lovelace")
    service.stop()
"""

import logging
from typing import Optional

from ..infra.settings import QueueSettings
from .dispatcher import Dispatcher, PrinterProtocol, RendererProtocol
from .entities import (
    ACTIVE_STATUSES,
    Job,
    JobStatus,
    QueueCapacity,
    QueueStatus,
)
from .errors import (
    CapacityExceededError,
    InvalidOperationError,
    JobNotCancelableError,
    JobNotFoundError,
)
from .events import (
    EventBus,
    JobAdded,
    JobCancelled,
    JobStatusChanged,
    QueueUpdated,
)
from .persistence import JobStore
from .retry_controller import RetryController


logger = logging.getLogger(__name__)


INTERVENTION_ACTIONS = ("reset", "fail", "complete")
INTERVENABLE_STATUSES = (JobStatus.PROCESSING, JobStatus.FAILED)


class PrintQueueService:
    """
    Main service that coordinates all scheduler components.

    Provides:
    - Component initialization and wiring
    - Admission, cancellation, manual retry and intervention
    - Queue status and capacity reporting
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: Dispatcher,
        retry_controller: RetryController,
        events: EventBus,
        max_queue_size: int,
    ):
        """
        Initialize PrintQueueService with all components.

        Use PrintQueueService.create() for convenient construction.
        """
        self.store = store
        self.dispatcher = dispatcher
        self.retry_controller = retry_controller
        self.events = events
        self.max_queue_size = max_queue_size

        self._started = False

    @classmethod
    def create(
        cls,
        settings: QueueSettings,
        renderer: Optional[RendererProtocol] = None,
        printer: Optional[PrinterProtocol] = None,
        events: Optional[EventBus] = None,
    ) -> "PrintQueueService":
        """
        Create a PrintQueueService with all components wired together.

        Args:
            settings: Queue configuration
            renderer: Badge renderer (default: BadgeRenderer on settings.templates_dir)
            printer: Printer (default: from settings.printer_name / spool_dir)
            events: EventBus to publish on (default: a new one)

        Returns:
            Configured PrintQueueService
        """
        store = JobStore(settings.db_path)
        events = events or EventBus()

        # Imported here: both modules import print_queue.errors
        if renderer is None:
            from ..badges.renderer import BadgeRenderer
            renderer = BadgeRenderer(settings.templates_dir)
        if printer is None:
            from ..printing.printer import create_printer
            printer = create_printer(
                settings.printer_name, settings.spool_dir, settings.printer_preset
            )

        retry_controller = RetryController(
            store=store,
            events=events,
            max_retries=settings.max_retries,
            base_delay_seconds=settings.retry_base_delay,
        )

        dispatcher = Dispatcher(
            store=store,
            renderer=renderer,
            printer=printer,
            retry_controller=retry_controller,
            events=events,
            work_dir=settings.work_dir,
            processing_timeout=settings.processing_timeout,
            poll_interval=settings.poll_interval,
        )

        service = cls(
            store=store,
            dispatcher=dispatcher,
            retry_controller=retry_controller,
            events=events,
            max_queue_size=settings.max_queue_size,
        )

        # Wire components
        dispatcher.set_on_queue_changed(service.broadcast_queue_update)
        retry_controller.set_on_queue_changed(service.broadcast_queue_update)
        retry_controller.set_on_retry_ready(lambda job: dispatcher.wake())

        return service

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, blocking: bool = False) -> None:
        """
        Start the dispatch loop.

        Raises:
            RuntimeError: If already started
        """
        if self._started:
            raise RuntimeError("Print queue already started")

        logger.info("Starting print queue service...")
        self._started = True
        self.dispatcher.start(blocking=blocking)
        logger.info("Print queue service started")

    def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the dispatch loop and cancel pending backoff timers.

        Args:
            timeout: Maximum wait time for the current print
        """
        was_started = self._started
        if was_started:
            logger.info("Stopping print queue service...")

        self.dispatcher.stop(timeout=timeout)
        self.retry_controller.shutdown()
        self._started = False

        if was_started:
            logger.info("Print queue service stopped")

    @property
    def is_running(self) -> bool:
        """Check if the dispatch loop is running."""
        return self._started and self.dispatcher.is_running()

    @property
    def renderer(self) -> RendererProtocol:
        return self.dispatcher.renderer

    @property
    def printer(self) -> PrinterProtocol:
        return self.dispatcher.printer

    # =========================================================================
    # Job Operations
    # =========================================================================

    def submit(self, template_id: str, uid: str, badge_name: str) -> Job:
        """
        Admit a new print job.

        Raises:
            ValueError: If a field is empty
            CapacityExceededError: If the active set is full
            DuplicateUIDError: If uid belongs to an active job
        """
        for field_name, value in (
            ("template_id", template_id),
            ("uid", uid),
            ("badge_name", badge_name),
        ):
            if not value or not value.strip():
                raise ValueError(f"{field_name} is required")

        if self.store.count_active().total >= self.max_queue_size:
            raise CapacityExceededError(self.max_queue_size)

        job = self.store.create(
            template_id=template_id,
            uid=uid,
            badge_name=badge_name,
            max_active=self.max_queue_size,
        )

        logger.info(f"Job {job.id} added to queue (uid={job.uid})")
        self.events.publish(JobAdded(job=job))
        self.broadcast_queue_update()
        self.dispatcher.wake()
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        return self.store.find_by_id(job_id)

    def cancel(self, job_id: str) -> Job:
        """
        Cancel a job and delete its record.

        An in-flight print is released, not aborted: the printer may still
        produce the badge.

        Raises:
            JobNotFoundError: If the job does not exist
            JobNotCancelableError: If the job is completed
        """
        job = self.store.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status == JobStatus.COMPLETED:
            raise JobNotCancelableError(job_id)

        if self.dispatcher.abandon(job_id):
            logger.warning(f"Cancelled job {job_id} while printing; print call not aborted")
        self.retry_controller.cancel_pending(job_id)

        self.store.delete(job_id)

        logger.info(f"Job {job_id} cancelled")
        self.events.publish(JobCancelled(job=job))
        self.broadcast_queue_update()
        return job

    def retry(self, job_id: str) -> Job:
        """
        Manually retry a failed job.

        Raises:
            JobNotFoundError: If the job does not exist
            JobNotRetryableError: If the job is not failed
            RetryLimitExceededError: If retry_count >= max_retries
            DuplicateUIDError: If the uid is active on another job
        """
        job = self.retry_controller.manual_retry(job_id)
        self.broadcast_queue_update()
        self.dispatcher.wake()
        return job

    def intervene(self, job_id: str, action: str, reason: Optional[str] = None) -> Job:
        """
        Operator override for stuck or failed jobs.

        Actions:
            reset: back to QUEUED (retry_count unchanged)
            fail: FAILED with `reason` as error message
            complete: COMPLETED

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidOperationError: Unknown action, or job not processing/failed
        """
        if action not in INTERVENTION_ACTIONS:
            raise InvalidOperationError(
                f"Action must be one of: {', '.join(INTERVENTION_ACTIONS)}"
            )

        job = self.store.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status not in INTERVENABLE_STATUSES:
            raise InvalidOperationError(
                f"Manual intervention is only allowed for processing or failed jobs. "
                f"Current status: {job.status.value}"
            )

        reason = reason or f"Manual intervention: {action}"
        self.dispatcher.abandon(job_id)

        if action == "reset":
            job = self.store.update_status(job_id, JobStatus.QUEUED)
        elif action == "fail":
            job = self.store.update_status(job_id, JobStatus.FAILED, error_message=reason)
        else:
            job = self.store.update_status(job_id, JobStatus.COMPLETED)

        logger.info(f"Manual intervention on job {job_id}: {action} ({reason})")
        self.events.publish(JobStatusChanged(job=job))
        self.broadcast_queue_update()
        if job.status == JobStatus.QUEUED:
            self.dispatcher.wake()
        return job

    # =========================================================================
    # Queue Status
    # =========================================================================

    def status(self) -> QueueStatus:
        """Point-in-time snapshot of the queue. Read-only."""
        counts = self.store.count_by_status()
        counts["total"] = counts[JobStatus.QUEUED.value] + counts[JobStatus.PROCESSING.value]

        return QueueStatus(
            counts=counts,
            active_jobs=self.store.find_all(list(ACTIVE_STATUSES)),
            current_job=self.dispatcher.current_job,
            is_processing=self.is_running,
            pending_retries=self.retry_controller.pending_retries,
        )

    def capacity(self) -> QueueCapacity:
        """Derived capacity figures. Read-only."""
        return QueueCapacity(
            current=self.store.count_active().total,
            maximum=self.max_queue_size,
        )

    def history(
        self,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """Terminal jobs, most recently processed first, with total count."""
        return self.store.find_history(status=status, limit=limit, offset=offset)

    def broadcast_queue_update(self) -> None:
        """Publish a QueueUpdated event with a fresh snapshot."""
        self.events.publish(QueueUpdated(snapshot=self.status()))
