"""
API package for HTTP and WebSocket endpoints.
"""

from .admin import router as admin_router
from .websocket import router as websocket_router

__all__ = [
    "admin_router",
    "websocket_router",
]
