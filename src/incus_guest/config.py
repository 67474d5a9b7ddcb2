"""Client configuration.

Defaults target the standard dev-incus socket. Every field can be
overridden from the environment, and explicit keyword overrides win
over both.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any

logger = logging.getLogger(__name__)

SOCKET_PATH = "/dev/incus/sock"

# Environment variable -> (field, type)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "INCUS_GUEST_SOCKET": ("socket_path", str),
    "INCUS_GUEST_TIMEOUT": ("timeout", float),
    "INCUS_GUEST_MAX_PENDING": ("max_pending_handlers", int),
    "INCUS_GUEST_SKIP_INVALID": ("skip_invalid_events", bool),
    "INCUS_GUEST_LOG_LEVEL": ("log_level", str),
}


def _coerce(value: str, target_type: type) -> Any:
    """Coerce an env-var string to the field's type."""
    if target_type is bool:
        return value.strip().lower() in ("1", "true", "yes", "on")
    return target_type(value)


@dataclass
class GuestConfig:
    """Configuration for GuestClient and EventListener."""

    # Path of the dev-incus Unix socket
    socket_path: str = SOCKET_PATH

    # Timeout for one-shot requests, in seconds. Stream reads never time out.
    timeout: float = 10.0

    # Bound on concurrently running event handlers (None = unbounded)
    max_pending_handlers: int | None = None

    # Log and skip undecodable events instead of ending the subscription
    skip_invalid_events: bool = False

    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, **overrides: Any) -> GuestConfig:
        """Build a config from INCUS_GUEST_* environment variables.

        Args:
            **overrides: Field values applied after the environment.
                None values are ignored.

        Raises:
            ValueError: If an environment value cannot be converted or an
                override names an unknown field
        """
        values: dict[str, Any] = {}
        for env_key, (name, typ) in _ENV_OVERRIDES.items():
            env_val = os.environ.get(env_key)
            if env_val is None or env_val == "":
                continue
            try:
                values[name] = _coerce(env_val, typ)
            except ValueError as e:
                raise ValueError(f"Invalid value for {env_key}: {env_val!r}") from e
            logger.debug(f"Env override: {env_key} -> {name} = {env_val!r}")

        known = {f.name for f in fields(cls)}
        for name, value in overrides.items():
            if name not in known:
                raise ValueError(f"Unknown config field: {name}")
            if value is not None:
                values[name] = value

        return cls(**values)
