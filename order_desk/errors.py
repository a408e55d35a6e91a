"""
errors.py — Error Taxonomy for Order Desk

Every failure in this package is a recoverable, user-visible state. The message
of each exception is meant to be shown to the store operator as-is, so it has
to say what went wrong and what to do about it.

Each class declares the HTTP status code the API layer answers with when the
error escapes a request handler.
"""

from typing import Optional


class OrderDeskError(Exception):
    """Base class for all Order Desk errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def error_type(self) -> str:
        return self.__class__.__name__


class ConfigurationError(OrderDeskError):
    """Required credentials or settings are missing. No network call was made."""

    status_code = 400


class AuthenticationError(OrderDeskError):
    """The remote service rejected the supplied credentials (401/403)."""

    status_code = 502


class NotFoundError(OrderDeskError):
    """Endpoint or resource is absent on the remote side (404)."""

    status_code = 502


class TransportError(OrderDeskError):
    """Network failure, blocked cross-origin request or mixed content."""

    status_code = 502


class MalformedResponseError(OrderDeskError):
    """The remote answered with something that is not the expected JSON."""

    status_code = 502


class RemoteBusinessError(OrderDeskError):
    """The remote explicitly reported a failure, usually with its own message."""

    status_code = 502

    def __init__(self, message: str, remote_status: Optional[int] = None):
        super().__init__(message)
        self.remote_status = remote_status


class UnmappedStatusError(OrderDeskError):
    """A local status has no remote counterpart. Indicates a configuration defect."""

    status_code = 422


class OrderNotFoundError(OrderDeskError):
    """The order id is not part of the currently loaded order set."""

    status_code = 404


class ConcurrentUpdateError(OrderDeskError):
    """A status update for the same order is still in flight."""

    status_code = 409
