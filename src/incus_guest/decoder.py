"""Envelope decoder for messages read off the events stream.

Turns one wire message into an Event. The `type` discriminator picks the
payload model; a missing or unknown type is a decode failure, while a
missing payload for a known type yields an empty payload.
"""

from __future__ import annotations

import pydantic
from pydantic import TypeAdapter

from .errors import DecodeError
from .types import ConfigEvent, DeviceEvent, Event

_event_adapter: TypeAdapter[ConfigEvent | DeviceEvent] = TypeAdapter(Event)


def decode_event(raw: str | bytes) -> ConfigEvent | DeviceEvent:
    """Decode a wire message into an Event.

    Args:
        raw: One JSON object as received from the host

    Returns:
        ConfigEvent or DeviceEvent depending on the message type

    Raises:
        DecodeError: If the message is not valid JSON, lacks a string
            timestamp, has a missing or unknown type, or carries a
            payload of the wrong shape
    """
    try:
        return _event_adapter.validate_json(raw)
    except pydantic.ValidationError as e:
        raise DecodeError(_describe(e)) from e


def encode_event(event: ConfigEvent | DeviceEvent) -> str:
    """Serialize an event back to its wire form."""
    return event.model_dump_json()


def _describe(error: pydantic.ValidationError) -> str:
    """Build a short message naming the first decode failure."""
    details = error.errors()
    if not details:
        return "invalid event"

    first = details[0]
    kind = first.get("type")
    if kind == "union_tag_not_found":
        return "invalid event: missing 'type' field"
    if kind == "union_tag_invalid":
        tag = (first.get("ctx") or {}).get("tag")
        return f"invalid event: unknown event type {tag!r}"

    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    if location:
        return f"invalid event: {location}: {message}"
    return f"invalid event: {message}"
