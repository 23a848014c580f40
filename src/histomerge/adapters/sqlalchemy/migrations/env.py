"""Alembic environment for the history database.

Migrations always run online: either on the connection handed over by
:func:`upgrade_head` or on a fresh engine for the configured database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from alembic import context
from sqlalchemy import create_engine, pool

from histomerge.adapters.sqlalchemy import mapper_registry, start_mappers
from histomerge.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

config = context.config

start_mappers()

target_metadata = mapper_registry.metadata


def _run(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations() -> None:
    existing_connection = config.attributes.get("connection")
    if existing_connection is not None:
        _run(existing_connection)
        return

    url = config.get_main_option("sqlalchemy.url") or get_database_config().uri
    engine = create_engine(url, poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as connection:
            _run(connection)
    finally:
        engine.dispose()


run_migrations()
