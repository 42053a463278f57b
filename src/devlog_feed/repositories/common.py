"""Dialect-aware helpers shared by repositories and services."""
from __future__ import annotations

from typing import Any

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from devlog_feed.db.session import Base

__all__ = ["insert_ignore"]


def insert_ignore(db: Session, model: type[Base], values: dict[str, Any]) -> bool:
    """Insert a row unless its primary key already exists.

    Uniqueness is decided by the database in a single statement, so
    concurrent re-deliveries of the same record cannot both succeed.

    Returns:
        True if a row was inserted, False if it was already present.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing()
    elif dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing()
    else:  # pragma: no cover - only SQLite and Postgres are deployed
        stmt = insert(model).prefix_with("IGNORE").values(**values)
    result = db.execute(stmt)
    return bool(result.rowcount)
