"""Per-connection protocol state machine.

The transport reader never touches protocol logic: it only turns what the
WebSocket delivers into (kind, payload) events on the session's inbound
queue. ``SessionProtocolHandler.run`` consumes that queue one event at a
time and drives the session through CONNECTING → ACTIVE → CLOSED.

Client → Server:
    {"type": "sos_alert", "data": {...alert...}, "ackId": "optional"}
    {"type": "get_alerts", "ackId": "optional"}
    {"type": "heartbeat", "data": {"timestamp": "..."}}

Server → Client:
    {"type": "connected", "data": {"message", "serverId", "timestamp"}}
    {"type": "sos_alert_broadcast", "data": {...alert..., "receivedAt", "fromSessionId"}}
    {"type": "heartbeat_response", "data": {"received", "serverTime"}}
    {"type": "ack", "ackId": "...", "data": {"success": bool, ...}}
    {"type": "error", "data": {"success": false, "code", "message"}}
"""

import asyncio
import json
import logging
from typing import Any, Optional, Tuple, Union

from starlette.websockets import WebSocketState

from .broadcast import BroadcastRouter
from .enum import MessageType, ServerEventType, SessionState, TransportEventKind
from .exception import ProtocolError, StoreError, ValidationError
from .registry import ConnectionRegistry
from .store import EventStore
from .util import now_iso, run_to_completion

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_BYTES = 1_000_000

# Consecutive receive failures after which the transport is considered gone
MAX_CONSECUTIVE_TRANSPORT_ERRORS = 3

WELCOME_MESSAGE = "Connected to SOS Alert Server"

CLOSE_CODE_REASONS = {
    1000: "client disconnect",
    1001: "client going away",
    1006: "transport close",
    1009: "message too large",
    1011: "server error",
}


def describe_close(code: Optional[int], reason: Optional[str] = None) -> str:
    """Human-readable disconnect reason for a WebSocket close code"""
    text = CLOSE_CODE_REASONS.get(code, f"closed with code {code}")
    if reason:
        text = f"{text}: {reason}"
    return text


class SessionProtocolHandler:
    """
    Protocol state machine for one client connection.

    Dependencies (EventStore, ConnectionRegistry, BroadcastRouter) are
    process-wide singletons injected by the WebSocket endpoint. The handler
    refers to itself in the registry by ``session_id`` only.

    Lifecycle:
    1. Creation: state CONNECTING, nothing registered
    2. run(): register, send welcome, state ACTIVE, start transport reader
    3. Inbound events processed strictly in arrival order
    4. Transport disconnect or fatal protocol error: state CLOSED,
       unregister, log ``disconnected``
    """

    def __init__(
        self,
        session_id: str,
        websocket: Any,
        registry: ConnectionRegistry,
        router: BroadcastRouter,
        store: EventStore,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
    ):
        self.session_id = session_id
        self.state = SessionState.CONNECTING
        self._websocket = websocket
        self._registry = registry
        self._router = router
        self._store = store
        self._max_message_bytes = max_message_bytes

        self._inbound: asyncio.Queue = asyncio.Queue()
        self._reader_task: Optional[asyncio.Task] = None

    # ========== Lifecycle ==========

    async def run(self) -> str:
        """
        Drive the session until it is closed.

        Returns:
            The disconnect reason recorded for this session
        """
        reason = "unknown"
        try:
            await self._activate()

            self._reader_task = asyncio.create_task(
                self._read_transport(),
                name=f"session-reader-{self.session_id}"
            )

            while self.state is SessionState.ACTIVE:
                kind, payload = await self._inbound.get()

                if kind is TransportEventKind.DISCONNECT:
                    reason = payload
                    break

                if kind is TransportEventKind.ERROR:
                    await self._on_transport_error(payload)
                    continue

                try:
                    await self._handle_frame(payload)
                except ProtocolError as e:
                    # Only fatal protocol errors escape _handle_frame
                    reason = f"protocol error: {e.message}"
                    await self._store.append_event(
                        ServerEventType.PROTOCOL_ERROR,
                        {"sessionId": self.session_id, "code": e.code, "error": e.message, "fatal": True}
                    )
                    await self._close_transport(1009, e.message)
                    break

        except asyncio.CancelledError:
            reason = "session cancelled"
            raise
        finally:
            # Closing must finish even when the task keeps being cancelled
            await run_to_completion(self._close(reason))

        return reason

    async def _activate(self):
        await self._registry.register(self.session_id, self._websocket)
        self.state = SessionState.ACTIVE

        self._registry.send(self.session_id, {
            "type": MessageType.CONNECTED.value,
            "data": {
                "message": WELCOME_MESSAGE,
                "serverId": self.session_id,
                "timestamp": now_iso(),
            },
        })

        client = getattr(self._websocket, "client", None)
        details = {"sessionId": self.session_id}
        if client is not None:
            details["remoteAddress"] = f"{client.host}:{client.port}"

        logger.info(f"Client connected: {self.session_id}")
        await self._store.append_event(ServerEventType.CONNECTED, details)

    async def _close(self, reason: str):
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED

        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()

        # Removal from the registry happens before the first await inside
        # unregister, so it completes even if this task is being cancelled
        await self._registry.unregister(self.session_id)

        logger.info(f"Client disconnected: {self.session_id}, reason: {reason}")
        await self._store.append_event(
            ServerEventType.DISCONNECTED,
            {"sessionId": self.session_id, "reason": reason}
        )

    async def _close_transport(self, code: int, reason: str):
        try:
            await self._websocket.close(code=code, reason=reason[:120])
        except Exception as e:
            logger.debug(f"Error closing WebSocket for session {self.session_id}: {e}")

    # ========== Transport reader ==========

    async def _read_transport(self):
        """Feed transport events into the inbound queue until disconnect"""
        consecutive_errors = 0

        while True:
            try:
                message = await self._websocket.receive()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                consecutive_errors += 1
                self._inbound.put_nowait((TransportEventKind.ERROR, e))
                if (
                    self._transport_gone()
                    or consecutive_errors >= MAX_CONSECUTIVE_TRANSPORT_ERRORS
                ):
                    self._inbound.put_nowait((TransportEventKind.DISCONNECT, "transport error"))
                    return
                continue

            consecutive_errors = 0

            if message["type"] == "websocket.disconnect":
                self._inbound.put_nowait((
                    TransportEventKind.DISCONNECT,
                    describe_close(message.get("code", 1000), message.get("reason")),
                ))
                return

            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes")
            if frame is not None:
                self._inbound.put_nowait((TransportEventKind.MESSAGE, frame))

    def _transport_gone(self) -> bool:
        states = (
            getattr(self._websocket, "client_state", None),
            getattr(self._websocket, "application_state", None),
        )
        return WebSocketState.DISCONNECTED in states

    async def _on_transport_error(self, error: Exception):
        # Logged only; closing is driven by the DISCONNECT event
        logger.error(f"Socket error from {self.session_id}: {error}")
        await self._store.append_event(
            ServerEventType.SOCKET_ERROR,
            {"sessionId": self.session_id, "error": str(error)}
        )

    # ========== Message handling ==========

    async def _handle_frame(self, frame: Union[str, bytes]):
        """
        Parse and dispatch one inbound frame.

        Binary frames must carry UTF-8 JSON. Non-fatal protocol errors are
        answered here and the session stays active. Fatal ones (oversized
        frame) are re-raised to ``run``.
        """
        raw = frame if isinstance(frame, bytes) else frame.encode("utf-8")
        if len(raw) > self._max_message_bytes:
            raise ProtocolError(
                f"Message exceeds {self._max_message_bytes} bytes",
                code="MESSAGE_TOO_LARGE",
                fatal=True,
            )

        ack_id = None
        try:
            message_type, data, ack_id = parse_envelope(decode_frame(frame))

            if message_type == MessageType.SOS_ALERT.value:
                await self._on_sos_alert(data, ack_id)
            elif message_type == MessageType.GET_ALERTS.value:
                await self._on_get_alerts(ack_id)
            elif message_type == MessageType.HEARTBEAT.value:
                self._on_heartbeat(data)
            else:
                raise ProtocolError(f"Unknown message type: {message_type}")

        except ProtocolError as e:
            logger.warning(f"Protocol error from {self.session_id}: {e.message}")
            await self._store.append_event(
                ServerEventType.PROTOCOL_ERROR,
                {"sessionId": self.session_id, "code": e.code, "error": e.message}
            )
            self._reply_error(e.code, e.message, ack_id)

    async def _on_sos_alert(self, data: Any, ack_id: Optional[str]):
        try:
            result = await self._router.submit_alert(self.session_id, data)
        except ValidationError as e:
            logger.warning(f"Rejected SOS alert from {self.session_id}: {e.message}")
            self._reply(ack_id, {"success": False, "message": e.message, "code": e.code})
            return
        except StoreError as e:
            logger.error(f"Failed to persist SOS alert from {self.session_id}: {e.message}")
            self._reply(ack_id, {
                "success": False,
                "message": f"Server error: {e.message}",
                "code": e.code,
            })
            return
        except Exception as e:
            logger.error(f"Error handling SOS alert from {self.session_id}: {e}", exc_info=True)
            self._reply(ack_id, {
                "success": False,
                "message": f"Server error: {e}",
                "code": "INTERNAL_ERROR",
            })
            return

        self._reply(ack_id, {
            "success": True,
            "message": "SOS alert received and broadcasted",
            "alertId": result.alert_id,
            "clientsNotified": result.clients_notified,
        })

    async def _on_get_alerts(self, ack_id: Optional[str]):
        try:
            alerts = await self._store.list_all()
        except StoreError as e:
            logger.error(f"Error getting alerts for {self.session_id}: {e.message}")
            self._reply(ack_id, {"success": False, "message": e.message, "alerts": [], "count": 0})
            return

        records = [alert.to_record() for alert in alerts]
        logger.info(f"Sending {len(records)} stored alerts to client {self.session_id}")
        self._reply(ack_id, {"success": True, "alerts": records, "count": len(records)})

    def _on_heartbeat(self, data: Any):
        received = data.get("timestamp") if isinstance(data, dict) else None
        self._registry.send(self.session_id, {
            "type": MessageType.HEARTBEAT_RESPONSE.value,
            "data": {"received": received, "serverTime": now_iso()},
        })

    # ========== Replies ==========

    def _reply(self, ack_id: Optional[str], payload: dict):
        """Send an ack if the client asked for one"""
        if ack_id is None:
            return
        self._registry.send(self.session_id, {
            "type": MessageType.ACK.value,
            "ackId": ack_id,
            "data": payload,
        })

    def _reply_error(self, code: str, message: str, ack_id: Optional[str]):
        payload = {"success": False, "code": code, "message": message}
        if ack_id is not None:
            self._reply(ack_id, payload)
        else:
            self._registry.send(self.session_id, {
                "type": MessageType.ERROR.value,
                "data": payload,
            })


def parse_envelope(text: str) -> Tuple[Any, Any, Optional[str]]:
    """
    Split a raw frame into (type, data, ackId).

    Raises:
        ProtocolError: If the frame is not a JSON object or ackId is not a string
    """
    try:
        envelope = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Malformed JSON message: {e.msg}", code="PROTOCOL_ERROR")

    if not isinstance(envelope, dict):
        raise ProtocolError("Message must be a JSON object", code="PROTOCOL_ERROR")

    ack_id = envelope.get("ackId")
    if ack_id is not None and not isinstance(ack_id, (str, int)):
        raise ProtocolError("ackId must be a string or integer", code="PROTOCOL_ERROR")

    return envelope.get("type"), envelope.get("data"), ack_id


def decode_frame(frame: Union[str, bytes]) -> str:
    """
    Text of an inbound frame.

    Raises:
        ProtocolError: If a binary frame is not valid UTF-8
    """
    if isinstance(frame, str):
        return frame
    try:
        return frame.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Binary frame is not valid UTF-8: {e.reason}", code="PROTOCOL_ERROR")
