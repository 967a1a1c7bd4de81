"""Migrate the Flux tables of one server group: ``alembic -x server_group=<name> upgrade head``."""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import settings
from app.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
GAME_SERVER_TABLES = {"login"}


def include_object(obj, name, type_, reflected, compare_to):
    return not (type_ == "table" and name in GAME_SERVER_TABLES)


def _database_url() -> str:
    wanted = context.get_x_argument(as_dictionary=True).get("server_group")
    groups = {group.name: group.database_url for group in settings.server_groups}
    if wanted is None:
        if len(groups) != 1:
            raise SystemExit("Several server groups are configured; pass -x server_group=<name>")
        return next(iter(groups.values()))
    if wanted not in groups:
        raise SystemExit(f"Unknown server group {wanted!r}")
    return groups[wanted]


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(), target_metadata=target_metadata, include_object=include_object, literal_binds=True
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync_migrations(connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, include_object=include_object)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(_database_url(), future=True)
    async with engine.connect() as connection:
        await connection.run_sync(_run_sync_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
