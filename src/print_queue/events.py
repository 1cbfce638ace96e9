"""
Typed events and an in-process publish/subscribe bus.

Every state transition of the scheduler is published here. Subscribers (the
WebSocket broadcaster, tests, logging) register for a concrete event type or
for all events. A failing subscriber is logged and never affects the
publisher or the other subscribers.
"""

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, ClassVar, Optional, Type

from .entities import Job, QueueStatus, now_iso


logger = logging.getLogger(__name__)


@dataclass
class QueueEvent:
    """Base class for everything published on the bus."""

    name: ClassVar[str] = "event"
    timestamp: str = field(default_factory=now_iso, init=False)

    def payload(self) -> dict:
        return {}

    def to_message(self) -> dict:
        """Wire form: {"event": <name>, "data": <payload>, "timestamp": ...}."""
        return {
            "event": self.name,
            "data": self.payload(),
            "timestamp": self.timestamp,
        }


@dataclass
class JobAdded(QueueEvent):
    name: ClassVar[str] = "jobAdded"
    job: Job = None

    def payload(self) -> dict:
        return self.job.to_dict()


@dataclass
class JobStatusChanged(QueueEvent):
    name: ClassVar[str] = "jobStatusChange"
    job: Job = None

    def payload(self) -> dict:
        return self.job.to_dict()


@dataclass
class QueueUpdated(QueueEvent):
    name: ClassVar[str] = "queueUpdate"
    snapshot: QueueStatus = None

    def payload(self) -> dict:
        return self.snapshot.to_dict()


@dataclass
class JobCancelled(QueueEvent):
    name: ClassVar[str] = "jobCancelled"
    job: Job = None

    def payload(self) -> dict:
        return self.job.to_dict()


@dataclass
class JobFailed(QueueEvent):
    name: ClassVar[str] = "jobFailed"
    job: Job = None
    error: Optional[BaseException] = None

    def payload(self) -> dict:
        return {"job": self.job.to_dict(), "error": str(self.error)}


@dataclass
class JobRetryScheduled(QueueEvent):
    name: ClassVar[str] = "jobRetryScheduled"
    job: Job = None
    delay_seconds: float = 0.0
    error: Optional[BaseException] = None

    def payload(self) -> dict:
        return {
            "job": self.job.to_dict(),
            "delay_seconds": self.delay_seconds,
            "delay_ms": int(round(self.delay_seconds * 1000)),
            "error": str(self.error) if self.error is not None else None,
        }


@dataclass
class JobRetried(QueueEvent):
    name: ClassVar[str] = "jobRetried"
    job: Job = None

    def payload(self) -> dict:
        return self.job.to_dict()


@dataclass
class SchedulerError(QueueEvent):
    """Internal fault caught at the loop boundary. Informational only."""

    name: ClassVar[str] = "error"
    error: Optional[BaseException] = None
    job_id: Optional[str] = None

    def payload(self) -> dict:
        return {
            "error": str(self.error),
            "type": type(self.error).__name__,
            "job_id": self.job_id,
        }


EventHandler = Callable[[QueueEvent], None]


class EventBus:
    """
    Simple synchronous publish/subscribe bus.

    Handlers run on the publishing thread, in subscription order.
    """

    def __init__(self):
        self._lock = Lock()
        self._subscribers: dict[Type[QueueEvent], list[EventHandler]] = {}

    def subscribe(self, event_type: Type[QueueEvent], handler: EventHandler) -> None:
        """
        Subscribe a handler to one event type.

        Subscribing to QueueEvent receives every event.
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)
        logger.debug(
            f"Subscribed {getattr(handler, '__name__', handler)!r} to {event_type.__name__}"
        )

    def subscribe_all(self, handler: EventHandler) -> None:
        self.subscribe(QueueEvent, handler)

    def unsubscribe(self, event_type: Type[QueueEvent], handler: EventHandler) -> bool:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def publish(self, event: QueueEvent) -> None:
        """Deliver an event to exact-type subscribers, then to catch-all ones."""
        with self._lock:
            handlers = list(self._subscribers.get(type(event), []))
            if type(event) is not QueueEvent:
                handlers += [
                    h for h in self._subscribers.get(QueueEvent, [])
                    if h not in handlers
                ]

        logger.debug(f"Publishing event: {event.name}")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)!r} "
                    f"for {event.name} failed: {e}",
                    exc_info=True,
                )
