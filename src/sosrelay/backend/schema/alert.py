"""Alert schemas for inbound SOS submissions

Field names on the wire are camelCase (``alertType``, ``additionalData``);
the Python attributes are snake_case and accept both spellings.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserInfo(BaseModel):
    """Person raising the alert (all fields optional)"""

    name: Optional[str] = Field(default=None, description="Display name")
    phone: Optional[str] = Field(default=None, description="Phone number")
    email: Optional[str] = Field(default=None, description="Email address")


class LocationInfo(BaseModel):
    """Device location at alert time

    A location without a latitude is treated as absent.
    """

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    altitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    timestamp: Optional[str] = Field(default=None, description="Client-reported fix time")


class DeviceInfo(BaseModel):
    """Submitting device"""

    platform: Optional[str] = None
    version: Optional[str] = None


class AlertIn(BaseModel):
    """Inbound SOS alert

    ``id``, ``timestamp`` and ``alertType`` are required and must be non-empty.
    ``timestamp`` is opaque: it is stored as sent, never parsed.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Caller-supplied unique alert id")
    timestamp: str = Field(..., min_length=1, description="Client-reported event time")
    alert_type: str = Field(..., alias="alertType", min_length=1, description="Alert category")
    message: Optional[str] = None
    user: Optional[UserInfo] = None
    location: Optional[LocationInfo] = None
    device: Optional[DeviceInfo] = None
    additional_data: Dict[str, Any] = Field(
        default_factory=dict,
        alias="additionalData",
        description="Arbitrary extra data, stored as an opaque JSON blob"
    )

    @field_validator("additional_data", mode="before")
    @classmethod
    def null_additional_data_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_wire(self) -> dict:
        """Serialize back to the camelCase wire shape, keeping only fields the client sent

        A location without a latitude is sent as null.
        """
        data = self.model_dump(by_alias=True, exclude_unset=True)
        if self.location is not None and self.location.latitude is None:
            data["location"] = None
        return data
