"""SQLAlchemy-backed persistence for user records."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from .models import UserSummary, metadata

logger = logging.getLogger("usersapi.database")

_INSERT_USER = text("INSERT INTO users (name, email) VALUES (:name, :email)")
_SELECT_USERS = text("SELECT name, email FROM users")
_UPDATE_USER = text("UPDATE users SET name = :name, email = :email WHERE email = :old_email")
_DELETE_USER = text("DELETE FROM users WHERE email = :email")
_PING = text("SELECT 1")

_POSTGRES_SCHEMES = ("postgres://", "postgresql://")


class StorageError(RuntimeError):
    """Raised when the storage backend rejects or fails a statement."""


def normalize_database_url(raw_url: str) -> str:
    """Map libpq-style URLs onto the psycopg driver and leave others untouched."""

    cleaned = (raw_url or "").strip()
    if not cleaned:
        raise ValueError("Database URL must not be empty")
    for scheme in _POSTGRES_SCHEMES:
        if cleaned.startswith(scheme):
            return "postgresql+psycopg://" + cleaned[len(scheme):]
    return cleaned


def _describe(exc: SQLAlchemyError) -> str:
    original = getattr(exc, "orig", None)
    if original is not None:
        return str(original).strip()
    return str(exc).strip()


def _build_engine(url: str, **engine_options: Any) -> Engine:
    try:
        parsed = make_url(url)
    except ArgumentError as exc:
        raise ValueError(f"Invalid database URL: {exc}") from exc

    connect_args: Dict[str, Any] = {}
    if parsed.get_backend_name() == "sqlite":
        # The pool hands connections to whichever worker thread serves the request.
        connect_args["check_same_thread"] = False

    return create_engine(
        parsed,
        pool_pre_ping=True,
        connect_args=connect_args,
        **engine_options,
    )


class Database:
    """Connection pool wrapper that runs the fixed user statements."""

    def __init__(self, url: str, **engine_options: Any) -> None:
        self._url = normalize_database_url(url)
        self._engine = _build_engine(self._url, **engine_options)

    @property
    def safe_url(self) -> str:
        """The connection URL with any password masked, for logging."""

        return self._engine.url.render_as_string(hide_password=True)

    def ping(self) -> None:
        """Check that the storage backend is reachable."""

        try:
            with self._engine.connect() as conn:
                conn.execute(_PING)
        except SQLAlchemyError as exc:
            raise StorageError(_describe(exc)) from exc

    def initialize(self) -> None:
        """Create the users table if it does not already exist."""

        try:
            metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StorageError(_describe(exc)) from exc

    def close(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # User statements
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str) -> None:
        """Insert a new user; duplicate emails surface as :class:`StorageError`."""

        self._execute(_INSERT_USER, {"name": name, "email": email})

    def list_users(self) -> List[UserSummary]:
        """Return every user's name and email in storage order."""

        try:
            with self._engine.connect() as conn:
                rows = conn.execute(_SELECT_USERS).all()
                return [UserSummary(name=row.name, email=row.email) for row in rows]
        except SQLAlchemyError as exc:
            raise StorageError(_describe(exc)) from exc

    def update_user(self, old_email: str, *, name: str, email: str) -> int:
        """Rewrite name and email of the user keyed by ``old_email``.

        Returns the number of rows the statement touched, which is zero when
        no user had ``old_email``.
        """

        return self._execute(
            _UPDATE_USER,
            {"name": name, "email": email, "old_email": old_email},
        )

    def delete_user(self, email: str) -> int:
        """Delete the user with ``email`` and return the affected row count."""

        return self._execute(_DELETE_USER, {"email": email})

    def _execute(self, statement, params: Dict[str, Any]) -> int:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(statement, params)
                return result.rowcount
        except SQLAlchemyError as exc:
            message = _describe(exc)
            logger.warning("Statement failed: %s", message)
            raise StorageError(message) from exc


__all__ = ["Database", "StorageError", "normalize_database_url"]
