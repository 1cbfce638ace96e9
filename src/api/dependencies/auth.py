"""
API key authentication for the print queue API.

Configured through QueueSettings (API_AUTH_ENABLED / API_KEY, read from the
environment or .env when this module is imported):

- /api/* routes expect an X-API-Key header
- /ws accepts the key as X-API-Key header or `api_key` query parameter
- /health is always open
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Security, WebSocket, status
from fastapi.security import APIKeyHeader

from src.infra.settings import load_settings


logger = logging.getLogger(__name__)


_settings = load_settings()
API_AUTH_ENABLED = _settings.api_auth_enabled
API_KEY = _settings.api_key

if API_AUTH_ENABLED and not API_KEY:
    logger.warning("API_AUTH_ENABLED is set without API_KEY; every request will be rejected")


api_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False,
    description="Print queue API key (required when API_AUTH_ENABLED=true)",
)


def key_matches(candidate: Optional[str]) -> bool:
    """Constant-time comparison against the configured key. An empty key never matches."""
    if not candidate or not API_KEY:
        return False
    return hmac.compare_digest(candidate.encode(), API_KEY.encode())


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> Optional[str]:
    """
    Route dependency for /api/*.

    Returns the accepted key, or None while auth is disabled.

    Raises:
        HTTPException: 401 when the key is missing or wrong
    """
    if not API_AUTH_ENABLED:
        return None

    if not api_key:
        raise _unauthorized("Missing API key. Provide X-API-Key header.")
    if not key_matches(api_key):
        logger.warning("Rejected request with invalid API key")
        raise _unauthorized("Invalid API key")

    return api_key


def verify_websocket_key(websocket: WebSocket) -> bool:
    """True when the handshake may proceed."""
    if not API_AUTH_ENABLED:
        return True

    # Browsers cannot set headers on a WebSocket handshake
    api_key = websocket.headers.get("x-api-key") or websocket.query_params.get("api_key")
    return key_matches(api_key)
