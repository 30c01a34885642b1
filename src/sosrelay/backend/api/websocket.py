"""WebSocket endpoint binding the transport to the session protocol"""

import logging
import uuid

from fastapi import APIRouter, WebSocket

from ..session import SessionProtocolHandler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Persistent bidirectional channel for SOS clients.

    Connection Establishment:
    1. Server accepts the WebSocket (no authentication, trusted LAN)
    2. Server assigns a session id and registers the session
    3. Server sends the ``connected`` welcome carrying the session id

    Message formats are documented in ``sosrelay.backend.session``.
    """
    state = websocket.app.state

    await websocket.accept()
    session_id = uuid.uuid4().hex

    handler = SessionProtocolHandler(
        session_id=session_id,
        websocket=websocket,
        registry=state.connection_registry,
        router=state.broadcast_router,
        store=state.event_store,
        max_message_bytes=state.max_message_bytes,
    )

    try:
        await handler.run()
    except Exception as e:
        logger.error(
            f"Unexpected error in WebSocket session {session_id}: {e}",
            exc_info=True
        )
