"""Exception types raised by the PropertyDesk stores and lifecycle."""
from __future__ import annotations


class PropertyDeskError(Exception):
    """Base class for recoverable PropertyDesk failures."""


class ValidationError(PropertyDeskError, ValueError):
    """Raised when a required field is missing or blank."""


class TransitionError(PropertyDeskError):
    """Raised when a request is asked to move to a status it cannot reach."""


class ForbiddenActionError(PropertyDeskError):
    """Raised when the acting user may not perform a lifecycle operation."""


class StorageError(PropertyDeskError, OSError):
    """Raised when the underlying key-value storage cannot be read or written."""


__all__ = [
    "ForbiddenActionError",
    "PropertyDeskError",
    "StorageError",
    "TransitionError",
    "ValidationError",
]
