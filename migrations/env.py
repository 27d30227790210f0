from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

import livecast.db.models  # noqa: F401 - registers the tables on Base.metadata
from livecast.core.config import get_settings
from livecast.core.db import Base, create_engine

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

settings = get_settings()


def _configure(**kwargs) -> None:
    # batch mode on SQLite, which lacks most ALTER COLUMN forms
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        render_as_batch=settings.database_url.startswith("sqlite"),
        **kwargs,
    )


def _migrate(connection: Connection | None = None) -> None:
    if connection is None:
        _configure(url=settings.database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    else:
        _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = create_engine(settings)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _migrate()
else:
    asyncio.run(_migrate_online())
