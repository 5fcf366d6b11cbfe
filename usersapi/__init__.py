"""CRUD HTTP service for user records."""

from __future__ import annotations

from typing import Any

from .database import Database, StorageError


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the users API application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


def create_application(*args: Any, **kwargs: Any):
    """Factory function for the application that owns its database pool."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "Database",
    "StorageError",
    "create_app",
    "create_application",
]
