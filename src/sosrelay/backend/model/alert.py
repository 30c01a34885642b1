"""SOS alert storage model"""

from datetime import datetime
from typing import Any, Optional
from sqlmodel import SQLModel, Field, Column, JSON

from ..schema.alert import AlertIn
from ..util import utcnow, isoformat


class SosAlert(SQLModel, table=True):
    """
    One emergency alert, keyed by the client-supplied id.

    The nested user/location/device sub-records of the wire format are
    flattened into columns. Re-submitting an id overwrites every column
    except ``stored_at``, which keeps the time of first persistence.
    """
    __tablename__ = "sos_alerts"

    id: str = Field(primary_key=True, description="Client-supplied alert id")
    timestamp: str = Field(description="Client-reported event time (opaque)")
    alert_type: str = Field(index=True)
    message: Optional[str] = None

    # User
    user_name: Optional[str] = None
    user_phone: Optional[str] = None
    user_email: Optional[str] = None

    # Location
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_accuracy: Optional[float] = None
    altitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    location_timestamp: Optional[str] = None

    # Device
    device_platform: Optional[str] = None
    device_version: Optional[str] = None

    additional_data: Any = Field(default=None, sa_column=Column(JSON))

    stored_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
    )

    @classmethod
    def columns_from(cls, alert: AlertIn) -> dict:
        """Flatten a validated alert into column values (``stored_at`` excluded)"""
        user = alert.user
        location = alert.location
        device = alert.device
        return {
            "id": alert.id,
            "timestamp": alert.timestamp,
            "alert_type": alert.alert_type,
            "message": alert.message,
            "user_name": user.name if user else None,
            "user_phone": user.phone if user else None,
            "user_email": user.email if user else None,
            "latitude": location.latitude if location else None,
            "longitude": location.longitude if location else None,
            "location_accuracy": location.accuracy if location else None,
            "altitude": location.altitude if location else None,
            "heading": location.heading if location else None,
            "speed": location.speed if location else None,
            "location_timestamp": location.timestamp if location else None,
            "device_platform": device.platform if device else None,
            "device_version": device.version if device else None,
            "additional_data": alert.additional_data or {},
        }

    def to_record(self) -> dict:
        """Rebuild the nested camelCase record returned to clients"""
        location = None
        if self.latitude is not None:
            location = {
                "latitude": self.latitude,
                "longitude": self.longitude,
                "accuracy": self.location_accuracy,
                "altitude": self.altitude,
                "heading": self.heading,
                "speed": self.speed,
                "timestamp": self.location_timestamp,
            }

        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "alertType": self.alert_type,
            "message": self.message,
            "user": {
                "name": self.user_name,
                "phone": self.user_phone,
                "email": self.user_email,
            },
            "location": location,
            "device": {
                "platform": self.device_platform,
                "version": self.device_version,
            },
            "additionalData": self.additional_data or {},
            "storedAt": isoformat(self.stored_at),
        }
