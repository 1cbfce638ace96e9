"""
API Dependencies package.

Cross-cutting concerns like authentication.
"""

from .auth import verify_api_key, verify_websocket_key, API_AUTH_ENABLED

__all__ = ["verify_api_key", "verify_websocket_key", "API_AUTH_ENABLED"]
