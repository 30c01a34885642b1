"""Dependency injection functions for FastAPI routes"""

from typing import Annotated

from fastapi import Depends, Request

from .registry import ConnectionRegistry
from .store import EventStore


def get_event_store(request: Request) -> EventStore:
    """Process-wide EventStore created during application startup"""
    return request.app.state.event_store


def get_connection_registry(request: Request) -> ConnectionRegistry:
    """Process-wide ConnectionRegistry created during application startup"""
    return request.app.state.connection_registry


StoreDep = Annotated[EventStore, Depends(get_event_store)]
RegistryDep = Annotated[ConnectionRegistry, Depends(get_connection_registry)]
