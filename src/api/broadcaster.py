"""
WebSocket fan-out of print queue events.

Scheduler events are published on worker threads; the manager hops them onto
the server's event loop and sends each one to every connected client as

    {"event": <name>, "data": <payload>, "timestamp": <utc>}
"""

import asyncio
import concurrent.futures
import logging
from typing import Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from src.print_queue.events import EventBus, QueueEvent


logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket clients and relays EventBus events to them."""

    def __init__(self):
        self._connections: set[WebSocket] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[EventBus] = None

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        logger.info(f"WebSocket client connected ({self.connection_count} total)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.discard(websocket)
            logger.info(f"WebSocket client disconnected ({self.connection_count} total)")

    async def send(self, websocket: WebSocket, message: dict) -> None:
        await websocket.send_json(message)

    async def broadcast(self, message: dict) -> None:
        for websocket in list(self._connections):
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"Dropping WebSocket client: {e}")
                self.disconnect(websocket)

    # =========================================================================
    # EventBus bridge
    # =========================================================================

    def attach(self, events: EventBus, loop: asyncio.AbstractEventLoop) -> None:
        """Relay every event on `events` to clients via `loop`."""
        self._events = events
        self._loop = loop
        events.subscribe_all(self.on_event)

    def detach(self) -> None:
        if self._events is not None:
            self._events.unsubscribe(QueueEvent, self.on_event)
        self._events = None
        self._loop = None

    def on_event(self, event: QueueEvent) -> None:
        """EventBus handler. Runs on the publishing thread."""
        loop = self._loop
        if loop is None or loop.is_closed() or not self._connections:
            return
        future = asyncio.run_coroutine_threadsafe(self.broadcast(event.to_message()), loop)
        future.add_done_callback(self._log_broadcast_failure)

    @staticmethod
    def _log_broadcast_failure(future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Broadcast to WebSocket clients failed: {error}", exc_info=error)


manager = ConnectionManager()
