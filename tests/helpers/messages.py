"""Builders for event stream wire messages."""

from __future__ import annotations

import json


def config_message(
    key: str,
    value: str = "",
    old_value: str = "",
    timestamp: str = "2026-10-19T09:00:00Z",
) -> str:
    """Wire message for a config event."""
    return json.dumps(
        {
            "timestamp": timestamp,
            "type": "config",
            "metadata": {"key": key, "old_value": old_value, "value": value},
        }
    )


def device_message(
    name: str,
    action: str = "add",
    device_type: str = "unix-char",
    path: str = "/dev/ttyS0",
    timestamp: str = "2026-10-19T09:00:00Z",
) -> str:
    """Wire message for a device event."""
    return json.dumps(
        {
            "timestamp": timestamp,
            "type": "device",
            "metadata": {
                "name": name,
                "action": action,
                "config": {"type": device_type, "path": path},
            },
        }
    )
