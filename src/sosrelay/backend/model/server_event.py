from datetime import datetime
from typing import Any, Optional
from sqlmodel import SQLModel, Field, Column, JSON

from ..enum import ServerEventType
from ..util import utcnow, isoformat


class ServerEvent(SQLModel, table=True):
    """
    Operational audit log entry.

    Append-only: rows are never updated, and clearing alerts leaves this
    table untouched.
    """
    __tablename__ = "server_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    event_type: ServerEventType = Field(index=True)

    # Structured payload, shape depends on event_type
    details: Any = Field(default=None, sa_column=Column(JSON))

    timestamp: datetime = Field(default_factory=utcnow, nullable=False, index=True)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "eventType": ServerEventType(self.event_type).value,
            "details": self.details,
            "timestamp": isoformat(self.timestamp),
        }
