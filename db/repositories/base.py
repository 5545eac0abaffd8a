"""Dialect-aware INSERT ... ON CONFLICT support shared by repositories."""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(session: AsyncSession, model):
    """Return an insert() construct that supports on_conflict_* for this session.

    PostgreSQL in production, SQLite in tests; both expose the same
    on_conflict_do_update / on_conflict_do_nothing API.
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
