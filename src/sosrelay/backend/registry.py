"""Connection registry for live WebSocket sessions.

Each registered session owns an outbound queue and a forwarding task that
is the only writer on its WebSocket. Everything that talks to a client
(acks, heartbeats, broadcasts) goes through that queue, so a slow client
never blocks the session that is broadcasting.

Architecture:
    Session A (state machine)
        BroadcastRouter.submit_alert()
            ↓ registry.all_except(A)       (snapshot list)
            ↓ registry.deliver(handle, msg) (put_nowait, never blocks)
    Forwarding task of session B
            ↓ queue.get()
            ↓ websocket.send_json(msg)
        Client B
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .exception import DeliveryError
from .util import utcnow, isoformat

logger = logging.getLogger(__name__)


@dataclass
class SessionHandle:
    """Live session entry owned by the registry

    Other components hold a handle only for the duration of a single
    broadcast; they refer to sessions by ``session_id`` otherwise.
    """
    session_id: str
    websocket: Any
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    connected_at: datetime = field(default_factory=utcnow)
    alive: bool = True
    closed: bool = False
    task: Optional[asyncio.Task] = None


class ConnectionRegistry:
    """
    Mapping from session id to a send-capable handle.

    Created once during application startup and stored in
    app.state.connection_registry.

    All mutations are plain dict operations with no await in between, so
    within the single event loop register/unregister are atomic with
    respect to a broadcast snapshot.
    """

    def __init__(self):
        # {session_id → SessionHandle}
        self._sessions: Dict[str, SessionHandle] = {}

    async def register(self, session_id: str, websocket: Any) -> SessionHandle:
        """
        Register a session and start its forwarding task.

        Idempotent: registering the same session id again returns the
        existing handle.

        Args:
            session_id: Unique session identifier
            websocket: Transport handle with an async ``send_json``

        Returns:
            The session's handle
        """
        existing = self._sessions.get(session_id)
        if existing is not None:
            logger.warning(f"Session {session_id} already registered, skipping")
            return existing

        handle = SessionHandle(session_id=session_id, websocket=websocket)
        self._sessions[session_id] = handle

        task = asyncio.create_task(
            self._forward_messages(handle),
            name=f"session-forward-{session_id}"
        )
        handle.task = task

        def task_done_callback(t: asyncio.Task):
            if not t.cancelled() and t.exception() is not None:
                exc = t.exception()
                logger.error(
                    f"Forwarding task failed for session {session_id}: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__)
                )

        task.add_done_callback(task_done_callback)

        logger.info(f"Session {session_id} registered ({len(self._sessions)} connected)")
        return handle

    async def unregister(self, session_id: str) -> None:
        """
        Remove a session and stop its forwarding task.

        No-op if the session is not registered. The handle is marked closed
        before the first await, so a snapshot taken earlier can no longer
        deliver to it.

        Args:
            session_id: Session identifier
        """
        handle = self._sessions.pop(session_id, None)
        if handle is None:
            logger.debug(f"Session {session_id} not registered, nothing to unregister")
            return

        handle.closed = True
        handle.alive = False

        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
            try:
                await asyncio.wait_for(handle.task, timeout=1.0)
            except asyncio.CancelledError:
                logger.debug(f"Forwarding task cancelled for session {session_id}")
            except asyncio.TimeoutError:
                logger.warning(f"Forwarding task cancellation timed out for session {session_id}")

        logger.info(f"Session {session_id} unregistered ({len(self._sessions)} connected)")

    def all_except(self, session_id: str) -> List[SessionHandle]:
        """
        Snapshot of live sessions other than ``session_id``.

        The returned list does not change when the registry does.
        """
        return [
            handle for sid, handle in self._sessions.items()
            if sid != session_id and handle.alive
        ]

    def count(self) -> int:
        """Number of live sessions"""
        return sum(1 for handle in self._sessions.values() if handle.alive)

    def get(self, session_id: str) -> Optional[SessionHandle]:
        return self._sessions.get(session_id)

    def is_registered(self, session_id: str) -> bool:
        return session_id in self._sessions

    def send(self, session_id: str, message: dict) -> bool:
        """
        Queue a message for one session.

        Returns:
            True if queued, False if the session is not registered or live
        """
        handle = self._sessions.get(session_id)
        if handle is None or handle.closed or not handle.alive:
            logger.debug(f"No connection for session {session_id}, message dropped")
            return False
        handle.queue.put_nowait(message)
        return True

    def deliver(self, handle: SessionHandle, message: dict) -> None:
        """
        Queue a broadcast message for a snapshot target.

        Raises:
            DeliveryError: If the target was unregistered or is no longer live
        """
        if handle.closed:
            raise DeliveryError(handle.session_id, f"Session {handle.session_id} is disconnected")
        if not handle.alive:
            raise DeliveryError(handle.session_id, f"Session {handle.session_id} is not live")
        handle.queue.put_nowait(message)

    def snapshot(self) -> List[dict]:
        """Liveness view of every registered session, oldest first"""
        return [
            {
                "sessionId": handle.session_id,
                "alive": handle.alive,
                "connectedAt": isoformat(handle.connected_at),
                "pendingMessages": handle.queue.qsize(),
            }
            for handle in sorted(self._sessions.values(), key=lambda h: h.connected_at)
        ]

    async def disconnect_all(self) -> int:
        """
        Close and unregister every session.

        Called during application shutdown.

        Returns:
            Number of sessions disconnected
        """
        session_ids = list(self._sessions.keys())

        for session_id in session_ids:
            handle = self._sessions.get(session_id)
            if handle is None:
                continue
            await self.unregister(session_id)
            try:
                await handle.websocket.close(code=1001, reason="server shutdown")
            except Exception as e:
                logger.debug(f"Error closing WebSocket for session {session_id}: {e}")

        logger.info(f"Disconnected all sessions ({len(session_ids)} connections)")
        return len(session_ids)

    async def _forward_messages(self, handle: SessionHandle):
        """
        Forward queued messages to the session's WebSocket.

        A send failure marks the session not live: it is skipped by later
        broadcasts until the transport reports the disconnect.
        """
        session_id = handle.session_id
        logger.debug(f"Forwarding task started for session {session_id}")

        try:
            while not handle.closed:
                message = await handle.queue.get()
                try:
                    await handle.websocket.send_json(message)
                    logger.debug(f"Sent to session {session_id}: type={message.get('type')}")
                except Exception as e:
                    handle.alive = False
                    logger.warning(
                        f"Delivery to session {session_id} failed, marking not live: {e}"
                    )
                    break
                finally:
                    handle.queue.task_done()
        except asyncio.CancelledError:
            logger.debug(f"Forwarding task cancelled for session {session_id}")
            raise
        finally:
            logger.debug(f"Forwarding task ended for session {session_id}")
