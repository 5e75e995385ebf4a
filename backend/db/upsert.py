"""
Dialect-aware INSERT ... ON CONFLICT

PostgreSQL in production, SQLite in tests. Both dialects expose the same
``on_conflict_do_update`` / ``on_conflict_do_nothing`` API.
"""

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(session: AsyncSession, model):
    """Return an ``Insert`` construct for the session's dialect."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
