"""Broadcast router: the single path every inbound alert takes"""

import asyncio
import logging
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from .enum import MessageType, ServerEventType
from .exception import DeliveryError, ValidationError
from .registry import ConnectionRegistry
from .schema.alert import AlertIn
from .store import EventStore
from .util import now_iso

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "alertType", "timestamp")


@dataclass
class BroadcastResult:
    """Outcome of a successful submission

    ``clients_notified`` is the size of the fan-out snapshot, not the number
    of confirmed deliveries.
    """
    alert_id: str
    alert_type: str
    clients_notified: int


class BroadcastRouter:
    """
    Validate, persist, then fan out an alert to every other live session.

    Persist-then-broadcast runs under one lock, so every target sees
    alerts in the order they finished persisting. Delivery is
    fire-and-forget per target: a failed target is logged and skipped,
    never retried.
    """

    def __init__(self, store: EventStore, registry: ConnectionRegistry):
        self._store = store
        self._registry = registry
        self._lock = asyncio.Lock()

    async def submit_alert(self, origin_session_id: str, payload: dict) -> BroadcastResult:
        """
        Submit an alert on behalf of a session.

        Args:
            origin_session_id: Session that submitted the alert (excluded from fan-out)
            payload: Raw alert object as received on the wire

        Returns:
            BroadcastResult with the alert id and fan-out size

        Raises:
            ValidationError: Required fields missing or malformed (nothing stored or sent)
            StoreError: Persistence failed (nothing sent)
        """
        alert = validate_alert(payload)

        async with self._lock:
            await self._store.put(alert)

            targets = self._registry.all_except(origin_session_id)
            message = {
                "type": MessageType.SOS_ALERT_BROADCAST.value,
                "data": {
                    **alert.to_wire(),
                    "receivedAt": now_iso(),
                    "fromSessionId": origin_session_id,
                },
            }

            for target in targets:
                try:
                    self._registry.deliver(target, message)
                except DeliveryError as e:
                    logger.warning(f"Broadcast of alert {alert.id} skipped target: {e.message}")

        logger.info(
            f"SOS alert {alert.id} ({alert.alert_type}) stored and broadcast "
            f"to {len(targets)} clients"
        )

        await self._store.append_event(
            ServerEventType.ALERT_RECEIVED,
            {
                "alertId": alert.id,
                "alertType": alert.alert_type,
                "sessionId": origin_session_id,
                "clientsNotified": len(targets),
            }
        )

        return BroadcastResult(
            alert_id=alert.id,
            alert_type=alert.alert_type,
            clients_notified=len(targets),
        )


def validate_alert(payload) -> AlertIn:
    """
    Validate a raw alert payload.

    Raises:
        ValidationError: With a message naming the required fields when any is
            missing or empty, or the pydantic error summary otherwise
    """
    if not isinstance(payload, dict):
        raise ValidationError("Alert payload must be an object")

    missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(REQUIRED_FIELDS)} "
            f"(missing: {', '.join(missing)})"
        )

    try:
        return AlertIn.model_validate(payload)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid alert: {details}") from e
