"""Admin and query endpoints: service status, stats, alert history"""

import logging

from fastapi import APIRouter, Query, Request

from ... import __version__
from ..dep import RegistryDep, StoreDep
from ..enum import ServerEventType
from ..util import now_iso

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])

SERVICE_NAME = "Offline SOS Alert Server"


@router.get("/")
async def get_status(registry: RegistryDep):
    """Service descriptor and connected-client count"""
    return {
        "serviceName": SERVICE_NAME,
        "version": __version__,
        "status": "running",
        "connectedClients": registry.count(),
        "timestamp": now_iso(),
    }


@router.get("/stats")
async def get_stats(store: StoreDep, registry: RegistryDep):
    """Operational event counts per type, most recently seen first

    Raises:
        StoreError: If the event log cannot be read (HTTP 500)
    """
    stats = await store.aggregate_stats()
    return {
        "success": True,
        "stats": stats,
        "connectedClients": registry.count(),
    }


@router.get("/alerts")
async def list_alerts(store: StoreDep):
    """Every stored alert, newest first

    Raises:
        StoreError: If alerts cannot be read (HTTP 500)
    """
    alerts = [alert.to_record() for alert in await store.list_all()]
    return {
        "success": True,
        "alerts": alerts,
        "count": len(alerts),
    }


@router.delete("/alerts")
async def clear_alerts(request: Request, store: StoreDep):
    """Delete every stored alert (operational log is kept)

    Raises:
        StoreError: If the delete fails (HTTP 500)
    """
    deleted = await store.clear_all()

    client = request.client
    await store.append_event(
        ServerEventType.ALERTS_CLEARED,
        {"deleted": deleted, "remoteAddress": client.host if client else None}
    )
    logger.warning(f"All alerts cleared ({deleted} removed)")

    return {
        "success": True,
        "message": "All alerts cleared",
        "deleted": deleted,
    }


@router.get("/clients")
async def list_clients(registry: RegistryDep):
    """Liveness snapshot of connected sessions"""
    clients = registry.snapshot()
    return {
        "success": True,
        "clients": clients,
        "count": len(clients),
    }


@router.get("/events")
async def list_events(
    store: StoreDep,
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of events"),
):
    """Most recent operational events, newest first"""
    events = [event.to_record() for event in await store.recent_events(limit)]
    return {
        "success": True,
        "events": events,
        "count": len(events),
    }
