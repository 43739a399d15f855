"""Dialect-specific INSERT constructs supporting ON CONFLICT clauses."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(session: AsyncSession, table: Any):
    """Return an ``insert()`` exposing ``on_conflict_do_update`` for the bound dialect."""

    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Atomic upserts are not supported on dialect {dialect_name!r}")
