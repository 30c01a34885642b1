"""Enumeration types for backend"""
from enum import Enum


class ServerEventType(str, Enum):
    """Operational event types recorded in the server event log

    The log is append-only. Every connection lifecycle change, every accepted
    alert and every transport/protocol fault produces one entry.
    """
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ALERT_RECEIVED = "alert_received"
    SOCKET_ERROR = "socket_error"
    PROTOCOL_ERROR = "protocol_error"
    SERVER_STARTED = "server_started"
    SERVER_STOPPED = "server_stopped"
    ALERTS_CLEARED = "alerts_cleared"


class SessionState(str, Enum):
    """Per-connection protocol state

    CONNECTING: Transport accepted, session not yet registered
    ACTIVE: Registered, inbound messages are processed
    CLOSED: Terminal, session unregistered and resources released
    """
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class MessageType(str, Enum):
    """WebSocket message types

    Client -> Server:
    - SOS_ALERT: Submit an alert for storage and broadcast
    - GET_ALERTS: Request the stored alert history
    - HEARTBEAT: Application-level liveness probe

    Server -> Client:
    - CONNECTED: Welcome message carrying the assigned session id
    - SOS_ALERT_BROADCAST: An alert submitted by another session
    - HEARTBEAT_RESPONSE: Echo of a heartbeat
    - ACK: Reply to a request that carried an ackId
    - ERROR: Reply to a malformed or unsupported request without ackId
    """
    SOS_ALERT = "sos_alert"
    GET_ALERTS = "get_alerts"
    HEARTBEAT = "heartbeat"

    CONNECTED = "connected"
    SOS_ALERT_BROADCAST = "sos_alert_broadcast"
    HEARTBEAT_RESPONSE = "heartbeat_response"
    ACK = "ack"
    ERROR = "error"


class TransportEventKind(str, Enum):
    """Kinds of events the transport reader feeds into a session's inbound queue"""
    MESSAGE = "message"
    ERROR = "error"
    DISCONNECT = "disconnect"
