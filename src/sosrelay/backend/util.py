"""Time and task helpers shared by the store, router and session handler"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Set

logger = logging.getLogger(__name__)

# Strong references to shielded tasks whose caller has gone away
_detached_tasks: Set[asyncio.Task] = set()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 with a trailing ``Z`` for UTC

    Naive datetimes (as returned by SQLite) are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string"""
    return isoformat(utcnow())


async def run_to_completion(aw: Awaitable) -> Any:
    """
    Await ``aw`` without letting a cancelled caller interrupt it.

    If the calling task is cancelled, CancelledError is raised in the caller
    as usual while ``aw`` keeps running in its own task. A failure after that
    point has nobody to report to and is logged.
    """
    task = asyncio.ensure_future(aw)
    _detached_tasks.add(task)
    task.add_done_callback(_detached_tasks.discard)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        task.add_done_callback(_log_detached_failure)
        raise


def _log_detached_failure(task: asyncio.Task):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Detached task failed after its caller was cancelled: {error}")
