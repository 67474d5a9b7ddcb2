"""Type definitions for the dev-incus guest API.

Events pushed by the host share one envelope:

    {"timestamp": "...", "type": "config" | "device", "metadata": {...}}

The `type` field selects the payload carried in `metadata`, so an Event
is a discriminated union with one model per event type. Each variant
only carries its own payload.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ValidationError


class EventType(str, Enum):
    """Event types the host can push on the events endpoint."""

    CONFIG = "config"  # Instance config key changed
    DEVICE = "device"  # Device added, removed or updated

    @classmethod
    def is_valid(cls, value: Any) -> bool:
        """Check whether a value names one of the known event types."""
        if isinstance(value, cls):
            return True
        return isinstance(value, str) and value in cls._value2member_map_

    @classmethod
    def parse(cls, value: str | EventType) -> EventType:
        """Convert a string to an EventType, raising ValidationError if unknown."""
        if not cls.is_valid(value):
            raise ValidationError(f"invalid event type: {value!r}")
        return cls(value)


class GuestModel(BaseModel):
    """Base for host-supplied records.

    Missing fields fall back to empty values and unknown fields are
    ignored, so newer hosts can add fields without breaking decoding.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")


# =============================================================================
# Request/response records
# =============================================================================


class InstanceInfo(GuestModel):
    """Information about the API and the instance state (GET /1.0)."""

    api_version: str = ""
    location: str = ""
    instance_type: str = ""
    state: str = ""


# =============================================================================
# Event payloads
# =============================================================================


class PayloadModel(GuestModel):
    """Base for event payloads.

    A null string field decodes as an empty string, the same as a
    missing one.
    """

    @model_validator(mode="before")
    @classmethod
    def _null_strings(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        strings = {name for name, field in cls.model_fields.items() if field.annotation is str}
        return {
            name: "" if value is None and name in strings else value
            for name, value in data.items()
        }


class ConfigUpdate(PayloadModel):
    """Payload of a config event."""

    key: str = ""
    old_value: str = ""
    value: str = ""


class DeviceConfig(PayloadModel):
    """Device configuration attached to a device event."""

    type: str = ""
    path: str = ""


class DeviceUpdate(PayloadModel):
    """Payload of a device event."""

    name: str = ""
    action: str = ""  # add, remove, update
    config: DeviceConfig = Field(default_factory=DeviceConfig)

    @field_validator("config", mode="before")
    @classmethod
    def _null_config(cls, value: Any) -> Any:
        return {} if value is None else value


# =============================================================================
# Events
# =============================================================================


class BaseEvent(GuestModel):
    """Fields shared by every event."""

    timestamp: str  # Opaque, passed through as sent by the host

    @property
    def event_type(self) -> EventType:
        return EventType(getattr(self, "type"))

    @field_validator("metadata", mode="before", check_fields=False)
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        # An explicit null payload is treated like an absent one
        return {} if value is None else value


class ConfigEvent(BaseEvent):
    """A config key of the instance changed."""

    type: Literal["config"] = "config"
    metadata: ConfigUpdate = Field(default_factory=ConfigUpdate)


class DeviceEvent(BaseEvent):
    """A device was attached, detached or changed."""

    type: Literal["device"] = "device"
    metadata: DeviceUpdate = Field(default_factory=DeviceUpdate)


Event = Annotated[ConfigEvent | DeviceEvent, Field(discriminator="type")]

Devices = dict[str, dict[str, str]]
