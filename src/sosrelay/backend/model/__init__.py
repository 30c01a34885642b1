"""Data models"""
from .alert import SosAlert
from .server_event import ServerEvent

__all__ = [
    "SosAlert",
    "ServerEvent",
]
