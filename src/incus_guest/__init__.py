"""incus-guest - Client for the Incus guest API (dev-incus).

Runs inside an Incus instance and talks to the host through
/dev/incus/sock:
- one-shot calls: instance info, devices, config keys, meta-data
- event stream: config and device change notifications
"""

from .client import GuestClient, create_client, format_config_key
from .config import SOCKET_PATH, GuestConfig
from .decoder import decode_event, encode_event
from .errors import (
    DecodeError,
    GuestAPIError,
    MissingConfigError,
    SocketError,
    StreamError,
    UnexpectedStatusError,
    ValidationError,
)
from .events import EVENTS_PATH, EventHandler, EventListener, build_events_path
from .transport import (
    GuestTransport,
    MockTransport,
    StreamConnection,
    UnixSocketTransport,
    create_transport,
    is_inside_instance,
)
from .types import (
    ConfigEvent,
    ConfigUpdate,
    DeviceConfig,
    DeviceEvent,
    DeviceUpdate,
    Event,
    EventType,
    InstanceInfo,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "GuestClient",
    "GuestConfig",
    "create_client",
    "format_config_key",
    "is_inside_instance",
    "SOCKET_PATH",
    # Events
    "EventListener",
    "EventHandler",
    "EVENTS_PATH",
    "build_events_path",
    "decode_event",
    "encode_event",
    # Transport
    "GuestTransport",
    "StreamConnection",
    "UnixSocketTransport",
    "MockTransport",
    "create_transport",
    # Types
    "Event",
    "EventType",
    "ConfigEvent",
    "ConfigUpdate",
    "DeviceEvent",
    "DeviceUpdate",
    "DeviceConfig",
    "InstanceInfo",
    # Errors
    "GuestAPIError",
    "SocketError",
    "UnexpectedStatusError",
    "DecodeError",
    "StreamError",
    "ValidationError",
    "MissingConfigError",
]
