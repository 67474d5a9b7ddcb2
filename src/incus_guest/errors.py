"""Errors raised by the guest API client.

Every failure surfaces as a subclass of GuestAPIError so callers can
catch the whole family at once, while the concrete class tells which
stage failed:

- SocketError: the socket could not be dialled or the transport broke
- UnexpectedStatusError: the host answered with a status we don't accept
- DecodeError: the host sent something we could not decode
- StreamError: the event stream failed while reading
"""

from __future__ import annotations


class GuestAPIError(Exception):
    """Base class for all guest API errors."""

    pass


class SocketError(GuestAPIError):
    """Connection to the guest API socket failed."""

    pass


class UnexpectedStatusError(GuestAPIError):
    """The host returned a status code other than the expected ones."""

    def __init__(self, status_code: int, path: str | None = None) -> None:
        message = f"unexpected status code: {status_code}"
        if path:
            message = f"{message} ({path})"
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class DecodeError(GuestAPIError):
    """A response body or stream message could not be decoded."""

    pass


class StreamError(GuestAPIError):
    """Reading from the event stream failed or the host closed it."""

    pass


class ValidationError(GuestAPIError, ValueError):
    """A value is not one of the accepted constants."""

    pass


class MissingConfigError(GuestAPIError):
    """A required config key is blank or could not be loaded."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(message)
        self.key = key
