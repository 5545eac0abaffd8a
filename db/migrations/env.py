"""Alembic environment for the auto-answer schema.

The database URL comes from `alembic -x db_url=...` or DATABASE_URL, and the
engine is built by db.connection so migrations accept exactly the drivers the
application does (postgresql+asyncpg, sqlite+aiosqlite).
"""
import asyncio
import os
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv

from db.connection import create_engine_for
from db.models import Base

load_dotenv()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    url = context.get_x_argument(as_dictionary=True).get("db_url") or os.environ.get(
        "DATABASE_URL"
    )
    if not url:
        raise RuntimeError(
            "Set DATABASE_URL (or pass -x db_url=...) to run migrations. "
            "See .env.example for the expected format."
        )
    return url


def _configure(**kwargs) -> None:
    url = _database_url()
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER most constraints in place
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    _configure(
        url=_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_engine_for(_database_url())
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
