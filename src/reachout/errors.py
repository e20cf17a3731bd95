from __future__ import annotations


class ReachoutError(Exception):
    """Base class for errors raised by the reminder engine."""


class ValidationError(ReachoutError):
    """Malformed input data, e.g. tags that are not a list of strings."""


class NotFoundError(ReachoutError):
    """A referenced contact or interaction does not exist."""


class NetworkError(ReachoutError):
    """An external create/delete call failed."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConcurrencyError(ReachoutError):
    """Another operation on the same id is already in flight."""


class UndoWindowExpired(ReachoutError):
    """The item can no longer be restored."""
