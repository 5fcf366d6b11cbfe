"""Domain models and table metadata for the users service."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Column, DateTime, Integer, MetaData, Table, Text, func

metadata = MetaData()

# Mirrors migrations/001_init.sql.
users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False),
    Column("email", Text, nullable=False, unique=True),
    Column("date_registered", DateTime, nullable=False, server_default=func.now()),
)


@dataclass(frozen=True)
class UserSummary:
    """The public projection of a user: name and email only."""

    name: str
    email: str


__all__ = ["UserSummary", "metadata", "users_table"]
