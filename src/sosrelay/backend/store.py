"""Durable event store: SOS alerts plus the operational event log

Both tables live in a single SQLite file under the configured data
directory. Writers are serialized by one asyncio.Lock; readers run
without it and see a consistent snapshot (WAL journal mode).
"""

import asyncio
import functools
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from sqlalchemy import delete, desc, event, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from .enum import ServerEventType
from .exception import StoreError
from .model import SosAlert, ServerEvent
from .schema.alert import AlertIn
from .util import utcnow, isoformat, run_to_completion

logger = logging.getLogger(__name__)

# Errors that mean the storage layer failed (as opposed to a programming error)
STORAGE_ERRORS = (SQLAlchemyError, OSError)


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def uninterruptible(method):
    """Run a store coroutine to completion even if its caller is cancelled

    An aiosqlite connection interrupted mid-statement goes back to the pool
    broken and fails every later operation that checks it out.
    """
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        return await run_to_completion(method(self, *args, **kwargs))
    return wrapper


class EventStore:
    """
    Persistence boundary for alerts and server events.

    Lifecycle:
    - Created once at application startup (``from_data_dir``)
    - ``initialize()`` creates the tables; failure is fatal for the server
    - Stored in app.state.event_store and injected into the broadcast
      router and every session handler
    - ``close()`` disposes the engine at shutdown

    Foreground operations (put, list_all, clear_all, aggregate_stats) raise
    StoreError. ``append_event`` never raises.
    """

    DB_FILENAME = "sos_alerts.db"

    def __init__(self, engine: AsyncEngine, db_path: Optional[Path] = None):
        self._engine = engine
        self.db_path = db_path
        self._session_factory = sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_data_dir(cls, data_dir: Path) -> 'EventStore':
        """Create a store whose database file lives in ``data_dir``

        Args:
            data_dir: Directory for the SQLite file (created if missing)

        Returns:
            Uninitialized EventStore (call ``initialize()``)

        Raises:
            StoreError: If the data directory cannot be created
        """
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create data directory {data_dir}: {e}") from e

        db_path = data_dir / cls.DB_FILENAME
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{db_path}",
            echo=False,
            future=True,
        )
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)

        return cls(engine, db_path)

    async def initialize(self) -> None:
        """Create tables if they don't exist

        Raises:
            StoreError: If the database cannot be opened or the schema created
        """
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to initialize event store: {e}", exc_info=True)
            raise StoreError(f"Failed to open durable storage: {e}") from e

        logger.info("Event store tables initialized")

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Event store closed")

    # ==================== Alerts ====================

    @uninterruptible
    async def put(self, alert: AlertIn) -> None:
        """Upsert an alert by id

        A duplicate id overwrites every field of the prior record except
        ``stored_at``.

        Raises:
            StoreError: On any write failure
        """
        values = SosAlert.columns_from(alert)
        stmt = sqlite_insert(SosAlert).values(**values, stored_at=utcnow())
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={name: stmt.excluded[name] for name in values if name != "id"},
        )

        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    await session.execute(stmt)
                    await session.commit()
            except STORAGE_ERRORS as e:
                logger.error(f"Failed to store alert {alert.id}: {e}", exc_info=True)
                raise StoreError(f"Failed to store alert {alert.id}: {e}") from e

        logger.debug(f"Alert stored: id={alert.id}, type={alert.alert_type}")

    @uninterruptible
    async def list_all(self) -> List[SosAlert]:
        """All alerts, newest stored first

        Raises:
            StoreError: On read failure
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SosAlert).order_by(SosAlert.stored_at.desc())
                )
                return list(result.scalars().all())
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to list alerts: {e}", exc_info=True)
            raise StoreError(f"Failed to read alerts: {e}") from e

    @uninterruptible
    async def clear_all(self) -> int:
        """Delete every alert; the server event log is untouched

        Returns:
            Number of alerts removed

        Raises:
            StoreError: On write failure
        """
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    result = await session.execute(delete(SosAlert))
                    await session.commit()
            except STORAGE_ERRORS as e:
                logger.error(f"Failed to clear alerts: {e}", exc_info=True)
                raise StoreError(f"Failed to clear alerts: {e}") from e

        deleted = result.rowcount or 0
        logger.info(f"Cleared {deleted} alerts")
        return deleted

    # ==================== Server events ====================

    @uninterruptible
    async def append_event(self, event_type: ServerEventType, details: Optional[dict] = None) -> None:
        """Append an operational event (best effort)

        Failures are logged and swallowed: operational logging must never
        fail the operation that triggered it.
        """
        try:
            async with self._write_lock:
                async with self._session_factory() as session:
                    session.add(ServerEvent(event_type=event_type, details=details or {}))
                    await session.commit()
        except Exception as e:
            logger.error(f"Error logging server event {event_type.value}: {e}")

    @uninterruptible
    async def aggregate_stats(self) -> List[dict]:
        """Per event type: count and last occurrence, most recent first

        Raises:
            StoreError: On read failure
        """
        last_occurrence = func.max(ServerEvent.timestamp).label("last_occurrence")
        stmt = (
            select(
                ServerEvent.event_type,
                func.count(ServerEvent.id).label("count"),
                last_occurrence,
            )
            .group_by(ServerEvent.event_type)
            .order_by(desc(last_occurrence))
        )

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to aggregate server stats: {e}", exc_info=True)
            raise StoreError(f"Failed to read server stats: {e}") from e

        return [
            {
                "eventType": ServerEventType(row.event_type).value,
                "count": row.count,
                "lastOccurrence": _format_timestamp(row.last_occurrence),
            }
            for row in rows
        ]

    @uninterruptible
    async def recent_events(self, limit: int = 100) -> List[ServerEvent]:
        """Most recent operational events, newest first

        Raises:
            StoreError: On read failure
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ServerEvent)
                    .order_by(ServerEvent.timestamp.desc(), ServerEvent.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to read server events: {e}", exc_info=True)
            raise StoreError(f"Failed to read server events: {e}") from e


def _format_timestamp(value: Any) -> Any:
    # SQLite may hand MAX() back as text rather than a datetime
    if isinstance(value, datetime):
        return isoformat(value)
    return value
