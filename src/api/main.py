"""
FastAPI application entry point.

Badge print queue server: badge submission and preview, queue control, job
history, template and printer catalog, and a WebSocket status feed.

Optional API key authentication (API_AUTH_ENABLED / API_KEY).
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, WebSocket
from starlette.websockets import WebSocketDisconnect

from src import __version__
from src.infra.logging_config import setup_logging
from src.infra.settings import load_settings
from src.print_queue.entities import now_iso
from .broadcaster import manager
from .routers import badges, queue, jobs, templates, printers
from ._queue_state import (
    get_queue_service,
    init_queue_service,
    shutdown_queue_service,
)
from .dependencies import auth
from .dependencies.auth import verify_api_key, API_AUTH_ENABLED


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: build the print queue service (started when autostart is set)
    and relay its events to WebSocket clients.
    Shutdown: stop the dispatch loop and cancel backoff timers.
    """
    service = init_queue_service(load_settings())
    manager.attach(service.events, asyncio.get_running_loop())

    yield

    manager.detach()
    shutdown_queue_service()


# Tag metadata for Swagger UI
tags_metadata = [
    {
        "name": "badges",
        "description": "Badge submission - queue a badge for printing",
    },
    {
        "name": "queue",
        "description": "Live queue state, cancellation and manual retry",
    },
    {
        "name": "jobs",
        "description": "Job lookup, history of completed/failed jobs and manual intervention",
    },
    {
        "name": "templates",
        "description": "Badge template catalog",
    },
    {
        "name": "printers",
        "description": "Printer discovery, status, presets and connectivity test",
    },
]

app = FastAPI(
    title="Badge Print Queue API",
    lifespan=lifespan,
    description="""
## Badge Print Queue API

Operators submit badge print jobs against a template. Jobs are rendered and
sent to a single printer one at a time, oldest first, with retry and backoff.

### Authentication
When `API_AUTH_ENABLED=true`, all endpoints except `/health` require an
`X-API-Key` header matching `API_KEY` (environment or .env). The `/ws`
feed accepts the key as header or `api_key` query parameter.

### Live feed
`/ws` sends `{"event": ..., "data": ..., "timestamp": ...}` messages:
`connected`, `jobAdded`, `jobStatusChange`, `queueUpdate`, `jobCancelled`,
`jobFailed`, `jobRetryScheduled`, `jobRetried`, `error`.

### Usage
```bash
# Start server
uvicorn src.api.main:app --host 127.0.0.1 --port 8000

# Queue a badge
curl -X POST http://localhost:8000/api/badges \\
  -H "Content-Type: application/json" \\
  -d '{"template_id": "default", "uid": "A1", "badge_name": "Ada Lovelace"}'
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)


# Health check - NO authentication (operational endpoint)
@app.get("/health")
async def health_check():
    """Health check endpoint. Not authenticated."""
    service = get_queue_service()
    return {
        "status": "ok",
        "version": __version__,
        "queue_running": service.is_running,
    }


@app.websocket("/ws")
async def queue_feed(websocket: WebSocket):
    """
    Live queue feed.

    Sends a `connected` message with the current snapshot, then every queue
    event. A client message "status" requests a fresh snapshot; "ping" is
    answered with "pong".
    """
    if not auth.verify_websocket_key(websocket):
        await websocket.close(code=1008)
        return

    await manager.connect(websocket)
    try:
        service = get_queue_service()
        await manager.send(websocket, {
            "event": "connected",
            "data": service.status().to_dict(),
            "timestamp": now_iso(),
        })

        while True:
            message = await websocket.receive_text()
            if message == "status":
                await manager.send(websocket, {
                    "event": "queueUpdate",
                    "data": service.status().to_dict(),
                    "timestamp": now_iso(),
                })
            elif message == "ping":
                await manager.send(websocket, {"event": "pong", "data": None, "timestamp": now_iso()})

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)


# Include routers WITH authentication dependency (when enabled)
auth_dependency = [Depends(verify_api_key)] if API_AUTH_ENABLED else []

app.include_router(
    badges.router, prefix="/api/badges", tags=["badges"], dependencies=auth_dependency
)
app.include_router(
    queue.router, prefix="/api/queue", tags=["queue"], dependencies=auth_dependency
)
app.include_router(
    jobs.router, prefix="/api/jobs", tags=["jobs"], dependencies=auth_dependency
)
app.include_router(
    templates.router, prefix="/api/templates", tags=["templates"], dependencies=auth_dependency
)
app.include_router(
    printers.router, prefix="/api/printers", tags=["printers"], dependencies=auth_dependency
)


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    settings = load_settings()
    setup_logging(settings.log_level, settings.log_dir)
    uvicorn.run(app, host="127.0.0.1", port=8000)


if __name__ == "__main__":
    run()
