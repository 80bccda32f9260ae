"""Alembic environment configuration.

Handles database migrations for the Flowdeck application. Migrations run
over a synchronous driver; the URL comes from ``DATABASE_URL_SYNC`` or is
derived from the async ``DATABASE_URL``.
"""

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection, make_url
from sqlmodel import SQLModel

from alembic import context

load_dotenv()

# Registers every table on SQLModel.metadata
import src.models  # noqa: E402,F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

# Async driver -> sync driver used for migrations
_SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg2",
    "sqlite+aiosqlite": "sqlite",
}


def get_url() -> str:
    """Resolve the synchronous database URL."""
    sync_url = os.getenv("DATABASE_URL_SYNC")
    if sync_url:
        return sync_url

    url = make_url(os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./flowdeck.db"))
    driver = _SYNC_DRIVERS.get(url.drivername, url.drivername)
    return url.set(drivername=driver).render_as_string(hide_password=False)


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER most constraints in place
        render_as_batch=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit migration SQL without a database connection."""
    _configure(
        url=get_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against the configured database."""
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        do_run_migrations(connection)

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
