"""Error taxonomy shared by every durable store adapter."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for repository-level failures."""


class NotFoundError(StoreError, LookupError):
    """Raised when a referenced entity does not exist in the durable store."""


class ConflictError(StoreError):
    """Raised when a create races with another create on a unique natural key."""


class StoreUnavailableError(StoreError):
    """Raised when the durable store cannot be reached."""


class CorruptStateError(StoreError):
    """Raised when the durable document cannot be parsed into a valid state."""
