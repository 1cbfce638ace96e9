"""
Print queue state management for API integration.

Provides singleton access to the PrintQueueService instance.
Initialized during FastAPI lifespan; started when settings.autostart is set.

Usage:
    from ._queue_state import get_queue_service, init_queue_service

    # In lifespan:
    init_queue_service(settings)

    # In routers:
    service = get_queue_service()
"""

import logging
from typing import Optional

from src.infra.settings import QueueSettings
from src.print_queue.events import EventBus
from src.print_queue.service import PrintQueueService


logger = logging.getLogger(__name__)


# Global print queue service instance
_queue_service: Optional[PrintQueueService] = None


def init_queue_service(
    settings: QueueSettings,
    events: Optional[EventBus] = None,
    **overrides,
) -> PrintQueueService:
    """
    Initialize the print queue service singleton.

    Called during FastAPI lifespan startup.

    Args:
        settings: Queue configuration
        events: EventBus shared with the WebSocket broadcaster
        **overrides: Passed to PrintQueueService.create (renderer, printer)

    Returns:
        Initialized PrintQueueService
    """
    global _queue_service

    if _queue_service is not None:
        return _queue_service

    _queue_service = PrintQueueService.create(settings, events=events, **overrides)

    if settings.autostart:
        _queue_service.start()

    return _queue_service


def set_queue_service(service: Optional[PrintQueueService]) -> None:
    """Install a prebuilt service (used by tests)."""
    global _queue_service
    _queue_service = service


def get_queue_service() -> PrintQueueService:
    """
    Get the print queue service singleton.

    Raises:
        RuntimeError: If the service is not initialized
    """
    if _queue_service is None:
        raise RuntimeError(
            "Print queue service not initialized. "
            "Ensure init_queue_service() is called during startup."
        )

    return _queue_service


def shutdown_queue_service() -> None:
    """
    Shutdown the print queue service.

    Called during FastAPI lifespan shutdown.
    """
    global _queue_service

    if _queue_service is not None:
        _queue_service.stop()
        _queue_service = None
