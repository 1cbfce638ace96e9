"""
Print Queue Test Fixtures.

Base fixtures:
  - Temporary SQLite file (one connection per operation, so no :memory:)
  - EventBus with a recorder attached
  - Scripted renderer and printer (fail N times, hang, block)
  - Fast settings (millisecond backoff, short timeout, fast polling)

Per-test fixtures:
  - Job factory with auto-generated uids
  - Fully wired PrintQueueService (not started)
"""

import itertools
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Generator, Optional, Type

import pytest

from src.infra.settings import QueueSettings
from src.print_queue import (
    Dispatcher,
    EventBus,
    Job,
    JobStatus,
    JobStore,
    PrintError,
    PrintQueueService,
    QueueEvent,
    RenderError,
    RetryController,
)


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

# Fast timings for tests (seconds)
FAST_BASE_DELAY = 0.05
FAST_TIMEOUT = 2.0
FAST_POLL = 0.05


class MockRenderer:
    """Renderer that returns fixed bytes, optionally failing the first calls."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls: list[tuple[str, str, str]] = []

    def render(self, template_id: str, uid: str, badge_name: str) -> bytes:
        self.calls.append((template_id, uid, badge_name))
        if len(self.calls) <= self.failures:
            raise RenderError(f"Render failure #{len(self.calls)}")
        return PNG_BYTES


class ScriptedPrinter:
    """
    Printer mock driven by a script.

    - failures: the first N calls raise PrintError (-1 = always fail)
    - delays: per-call sleep in seconds (missing entries = no sleep)
    - gate: when set, the first call blocks until gate is released
    """

    def __init__(
        self,
        failures: int = 0,
        delays: Optional[list[float]] = None,
        gate: Optional[threading.Event] = None,
    ):
        self.failures = failures
        self.delays = list(delays or [])
        self.gate = gate
        self.printed: list[str] = []
        self.existed: list[bool] = []
        self.started = threading.Event()
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        return len(self.printed)

    def print(self, document_path: str) -> None:
        with self._lock:
            call = len(self.printed)
            self.printed.append(document_path)
            self.existed.append(Path(document_path).exists())
        self.started.set()

        if call == 0 and self.gate is not None:
            self.gate.wait(timeout=10)
        if call < len(self.delays):
            time.sleep(self.delays[call])

        if self.failures < 0 or call < self.failures:
            raise PrintError(f"Printer offline (call {call + 1})")


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, events: EventBus):
        self.events: list[QueueEvent] = []
        self._lock = threading.Lock()
        events.subscribe_all(self._record)

    def _record(self, event: QueueEvent) -> None:
        with self._lock:
            self.events.append(event)

    def names(self) -> list[str]:
        with self._lock:
            return [e.name for e in self.events]

    def of_type(self, event_type: Type[QueueEvent]) -> list:
        with self._lock:
            return [e for e in self.events if isinstance(e, event_type)]


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll `predicate` until it is true or `timeout` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def make_settings(base_dir: Path, **overrides) -> QueueSettings:
    values = dict(
        db_path=base_dir / "print_queue.db",
        max_queue_size=50,
        max_retries=3,
        retry_base_delay=FAST_BASE_DELAY,
        processing_timeout=FAST_TIMEOUT,
        poll_interval=FAST_POLL,
        work_dir=base_dir / "temp",
        templates_dir=base_dir / "templates",
        spool_dir=base_dir / "spool",
        autostart=False,
        log_dir=base_dir / "logs",
    )
    values.update(overrides)
    return QueueSettings(**values)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup
    Path(db_path).unlink(missing_ok=True)
    # Also cleanup WAL and SHM files
    Path(f"{db_path}-wal").unlink(missing_ok=True)
    Path(f"{db_path}-shm").unlink(missing_ok=True)


@pytest.fixture
def store(temp_db_path: str) -> JobStore:
    """Create a fresh JobStore with empty database."""
    return JobStore(temp_db_path)


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(events: EventBus) -> EventRecorder:
    return EventRecorder(events)


@pytest.fixture
def renderer() -> MockRenderer:
    return MockRenderer()


@pytest.fixture
def printer() -> ScriptedPrinter:
    return ScriptedPrinter()


@pytest.fixture
def retry_controller(store: JobStore, events: EventBus) -> Generator[RetryController, None, None]:
    """Create a RetryController with fast backoff."""
    controller = RetryController(
        store=store,
        events=events,
        max_retries=3,
        base_delay_seconds=FAST_BASE_DELAY,
    )
    yield controller
    controller.shutdown()


@pytest.fixture
def dispatcher(
    store: JobStore,
    renderer: MockRenderer,
    printer: ScriptedPrinter,
    retry_controller: RetryController,
    events: EventBus,
    tmp_path: Path,
) -> Generator[Dispatcher, None, None]:
    """Create a Dispatcher with all dependencies."""
    disp = Dispatcher(
        store=store,
        renderer=renderer,
        printer=printer,
        retry_controller=retry_controller,
        events=events,
        work_dir=tmp_path / "temp",
        processing_timeout=FAST_TIMEOUT,
        poll_interval=FAST_POLL,
        error_backoff=FAST_POLL,
    )
    retry_controller.set_on_retry_ready(lambda job: disp.wake())
    yield disp
    disp.stop(timeout=5)


@pytest.fixture
def build_service(
    tmp_path: Path,
    events: EventBus,
    renderer: MockRenderer,
) -> Generator[Callable[..., PrintQueueService], None, None]:
    """
    Factory fixture for fully wired services.

    Accepts a `printer` plus any QueueSettings override. Services are
    stopped at teardown.
    """
    created: list[PrintQueueService] = []

    def _build(printer=None, renderer_override=None, **overrides) -> PrintQueueService:
        service = PrintQueueService.create(
            make_settings(tmp_path, **overrides),
            renderer=renderer_override or renderer,
            printer=printer or ScriptedPrinter(),
            events=events,
        )
        created.append(service)
        return service

    yield _build

    for service in created:
        service.stop(timeout=5)


@pytest.fixture
def service(build_service, printer: ScriptedPrinter) -> PrintQueueService:
    """A wired service with default settings. Not started."""
    return build_service(printer=printer)


# =============================================================================
# Job Factory Fixtures
# =============================================================================


@pytest.fixture
def create_job(store: JobStore) -> Callable:
    """
    Factory fixture for creating jobs directly in the store.

    uids default to U0001, U0002, ...
    """
    counter = itertools.count(1)

    def _create(
        uid: Optional[str] = None,
        badge_name: str = "Test Person",
        template_id: str = "default",
        status: JobStatus = JobStatus.QUEUED,
        error_message: Optional[str] = None,
    ) -> Job:
        job = store.create(
            template_id=template_id,
            uid=uid or f"U{next(counter):04d}",
            badge_name=badge_name,
        )
        if status == JobStatus.PROCESSING:
            job = store.claim(job.id)
        elif status != JobStatus.QUEUED:
            job = store.update_status(job.id, status, error_message=error_message)
        return job

    return _create


# =============================================================================
# Assertion Helpers
# =============================================================================


def assert_job_status(store: JobStore, job_id: str, expected: JobStatus):
    """Assert a job has the expected status."""
    job = store.find_by_id(job_id)
    assert job is not None, f"Job {job_id} not found"
    assert job.status == expected, f"Expected {expected}, got {job.status}"


def assert_at_most_one_processing(store: JobStore):
    processing = store.find_all(JobStatus.PROCESSING)
    assert len(processing) <= 1, f"{len(processing)} jobs processing at once"


def assert_active_uids_unique(store: JobStore):
    active = store.find_all([JobStatus.QUEUED, JobStatus.PROCESSING])
    uids = [job.uid for job in active]
    assert len(uids) == len(set(uids)), f"Duplicate active uids: {uids}"
