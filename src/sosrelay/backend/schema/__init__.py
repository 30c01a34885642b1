"""Pydantic schemas for WebSocket and HTTP payloads"""
from .alert import AlertIn, UserInfo, LocationInfo, DeviceInfo
from .response import ErrorResponse

__all__ = [
    "AlertIn",
    "UserInfo",
    "LocationInfo",
    "DeviceInfo",
    "ErrorResponse",
]
