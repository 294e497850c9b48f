"""Dialect-aware INSERT ... ON CONFLICT helpers.

The stat store, badge awards and session bookings all rely on unique
constraints plus insert-if-absent. PostgreSQL and SQLite share the same
``ON CONFLICT`` grammar, so the statement is built with whichever
dialect's ``insert`` construct matches the bound engine.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement


def dialect_insert(db: AsyncSession, table: Any) -> Any:  # noqa: ANN401
    """Return a dialect-specific ``insert(table)`` supporting ``on_conflict_*``."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


async def insert_if_absent(
    db: AsyncSession,
    table: Table | Any,
    values: dict[str, Any],
    index_elements: Sequence[str],
    index_where: ColumnElement[bool] | None = None,
) -> bool:
    """Insert a row unless it collides with the given unique index.

    Returns True if this call inserted the row, False if a conflicting
    row already existed. Concurrent callers race on the database's
    unique index, so exactly one of them sees True.
    """
    stmt = (
        dialect_insert(db, table)
        .values(**values)
        .on_conflict_do_nothing(index_elements=list(index_elements), index_where=index_where)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1
