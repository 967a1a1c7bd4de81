import asyncio
from collections.abc import Generator
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.ext import asyncio as sa_asyncio
from sqlalchemy.pool import NullPool

_TRACKED_ENGINES: list[sa_asyncio.AsyncEngine] = []
_ORIGINAL_CREATE_ASYNC_ENGINE = sa_asyncio.create_async_engine


def _tracked_create_async_engine(*args, **kwargs):  # type: ignore[no-untyped-def]
    engine = _ORIGINAL_CREATE_ASYNC_ENGINE(*args, **kwargs)
    _TRACKED_ENGINES.append(engine)
    return engine


sa_asyncio.create_async_engine = _tracked_create_async_engine  # type: ignore[assignment]

from app.core.config import settings  # noqa: E402
from app.db.session import ServerGroup, ServerGroupRegistry  # noqa: E402
from app.models.login import LoginAccount  # noqa: E402

SERVER_NAMES = ("Chaos", "Loki")


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _dispose_tracked_async_engines() -> Generator[None, None, None]:
    start_index = len(_TRACKED_ENGINES)
    yield
    pending = _TRACKED_ENGINES[start_index:]
    if not pending:
        return

    async def _dispose_all() -> None:
        for engine in pending:
            try:
                await engine.dispose()
            except Exception:
                continue

    try:
        asyncio.run(_dispose_all())
    except RuntimeError:
        loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(_dispose_all())
        finally:
            loop.close()

    del _TRACKED_ENGINES[start_index:]


@pytest.fixture(autouse=True)
def _donation_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Archive files and the PayPal log must never land in the working tree during tests.
    monkeypatch.setattr(settings, "transaction_log_dir", str(tmp_path / "transactions"))
    monkeypatch.setattr(settings, "paypal_log_path", str(tmp_path / "paypal.log"))
    monkeypatch.setattr(settings, "paypal_ipn_host", "ipnpb.paypal.test")
    monkeypatch.setattr(settings, "paypal_business_email", "donations@flux.test")
    monkeypatch.setattr(settings, "paypal_receiver_emails", ["payments@flux.test"])
    monkeypatch.setattr(settings, "paypal_duplicate_txn_policy", "allow")
    monkeypatch.setattr(settings, "donation_enabled", True)
    monkeypatch.setattr(settings, "donation_currency", "USD")
    monkeypatch.setattr(settings, "credit_exchange_rate", Decimal("5"))
    monkeypatch.setattr(settings, "use_clean_urls", False)
    monkeypatch.setattr(settings, "base_uri", "/")
    monkeypatch.setattr(settings, "default_module", "main")
    monkeypatch.setattr(settings, "default_action", "index")
    monkeypatch.setattr(settings, "use_md5_passwords", False)


def _sqlite_group(name: str, path: Path) -> ServerGroup:
    engine = sa_asyncio.create_async_engine(f"sqlite+aiosqlite:///{path}", future=True, poolclass=NullPool)
    factory = sa_asyncio.async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    return ServerGroup(name=name, engine=engine, session_factory=factory)


async def _create_login_tables(groups: ServerGroupRegistry) -> None:
    # Stands in for the game server's own schema.
    for group in groups:
        async with group.engine.begin() as conn:
            await conn.run_sync(LoginAccount.__table__.create)


@pytest.fixture
def registry(tmp_path: Path) -> ServerGroupRegistry:
    groups = ServerGroupRegistry(_sqlite_group(name, tmp_path / f"{name.lower()}.db") for name in SERVER_NAMES)
    asyncio.run(groups.create_all())
    asyncio.run(_create_login_tables(groups))
    return groups


def _seed_account(
    registry: ServerGroupRegistry,
    server_name: str,
    *,
    account_id: int = 2000001,
    userid: str = "donor",
    user_pass: str = "secret",
    sex: str = "M",
    level: int = 0,
    state: int = 0,
) -> int:
    group = registry.get(server_name)
    assert group is not None

    async def _seed() -> None:
        async with group.session_factory() as session:
            session.add(
                LoginAccount(
                    account_id=account_id,
                    userid=userid,
                    user_pass=user_pass,
                    sex=sex,
                    level=level,
                    state=state,
                    email=f"{userid}@example.com",
                )
            )
            await session.commit()

    asyncio.run(_seed())
    return account_id


@pytest.fixture
def seed_account():
    return _seed_account
