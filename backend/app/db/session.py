from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import ServerGroupSettings, settings
from app.db.base import Base

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerGroup:
    """A game server cluster with its own login database."""

    name: str
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]


def _connect_args(database_url: str) -> dict:
    return {"check_same_thread": False} if database_url.startswith("sqlite") else {}


def build_server_group(config: ServerGroupSettings) -> ServerGroup:
    engine = create_async_engine(
        config.database_url, future=True, echo=False, connect_args=_connect_args(config.database_url)
    )
    factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, class_=AsyncSession)
    return ServerGroup(name=config.name, engine=engine, session_factory=factory)


class ServerGroupRegistry:
    """Server groups in configuration order, looked up by their human-readable name."""

    def __init__(self, groups: Iterable[ServerGroup]):
        self._groups: dict[str, ServerGroup] = {}
        for group in groups:
            if group.name in self._groups:
                raise ValueError(f"Duplicate server group name {group.name!r}")
            self._groups[group.name] = group

    @classmethod
    def from_settings(cls, configs: Iterable[ServerGroupSettings] | None = None) -> "ServerGroupRegistry":
        return cls(build_server_group(cfg) for cfg in (configs if configs is not None else settings.server_groups))

    def get(self, name: str | None) -> ServerGroup | None:
        if not name:
            return None
        return self._groups.get(name)

    def names(self) -> list[str]:
        return list(self._groups)

    def __iter__(self) -> Iterator[ServerGroup]:
        return iter(list(self._groups.values()))

    def __len__(self) -> int:
        return len(self._groups)

    async def create_all(self) -> None:
        from app.models.donation import DonationCredit, PaypalTransaction

        # The login table belongs to the game server and is never created here.
        tables = [DonationCredit.__table__, PaypalTransaction.__table__]
        for group in self:
            async with group.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=tables)
            logger.info("Ensured Flux tables on server group %s", group.name)

    async def dispose(self) -> None:
        for group in self:
            await group.engine.dispose()


_registry: ServerGroupRegistry | None = None


def get_registry() -> ServerGroupRegistry:
    """FastAPI dependency returning the process-wide server group registry."""
    global _registry
    if _registry is None:
        _registry = ServerGroupRegistry.from_settings()
    return _registry
