"""Core package for the PropertyDesk maintenance request service."""

from __future__ import annotations

from typing import Any

from .application import PropertyDesk
from .storage import KeyValueStore, resolve_storage_path


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the web application for an open :class:`PropertyDesk`."""

    from .web import create_app as _create_app

    return _create_app(*args, **kwargs)


def create_application(*args: Any, **kwargs: Any):
    """Factory function that loads settings, opens storage and returns the web application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "KeyValueStore",
    "PropertyDesk",
    "resolve_storage_path",
    "create_app",
    "create_application",
]
