import asyncio
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import inspect

from app import cli
from app.core.config import ServerGroupSettings, settings
from app.db.session import ServerGroupRegistry
from app.models.donation import DonationCredit, PaypalTransaction


@pytest.fixture
def configured_groups(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(
        settings,
        "server_groups",
        [ServerGroupSettings(name="Chaos", database_url=f"sqlite+aiosqlite:///{tmp_path / 'chaos.db'}")],
    )
    asyncio.run(cli.init_db())
    return tmp_path


def _seed_donation(account_id: int, balance: int) -> None:
    async def seed() -> None:
        registry = ServerGroupRegistry.from_settings()
        try:
            async with registry.get("Chaos").session_factory() as session:
                session.add(DonationCredit(account_id=account_id, balance=balance, last_donation_amount=Decimal("25.00")))
                session.add(
                    PaypalTransaction(
                        account_id=str(account_id),
                        server_name="Chaos",
                        credits=balance,
                        txn_id="9XK31337AB",
                        payment_status="Completed",
                        mc_gross="25.00",
                        mc_currency="USD",
                    )
                )
                await session.commit()
        finally:
            await registry.dispose()

    asyncio.run(seed())


def test_init_db_creates_tables(configured_groups: Path, capsys: pytest.CaptureFixture[str]) -> None:
    asyncio.run(cli.init_db())
    assert "Tables ready on 1 server group(s)" in capsys.readouterr().out
    assert (configured_groups / "chaos.db").exists()


def test_init_db_leaves_login_table_to_the_game_server(configured_groups: Path) -> None:
    async def table_names() -> list[str]:
        registry = ServerGroupRegistry.from_settings()
        try:
            async with registry.get("Chaos").engine.connect() as conn:
                return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        finally:
            await registry.dispose()

    assert sorted(asyncio.run(table_names())) == ["flux_donation_credits", "flux_paypal_transactions"]


def test_credit_balance_reports_balance(configured_groups: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_donation(2000001, 5)

    asyncio.run(cli.credit_balance("Chaos", 2000001))

    out = capsys.readouterr().out
    assert "Account #2000001 on Chaos: balance=5" in out


def test_credit_balance_for_unknown_donor(configured_groups: Path, capsys: pytest.CaptureFixture[str]) -> None:
    asyncio.run(cli.credit_balance("Chaos", 42))
    assert "Account #42 has never donated on Chaos" in capsys.readouterr().out


def test_list_transactions_filters_by_txn_id(configured_groups: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_donation(2000001, 5)

    asyncio.run(cli.list_transactions("Chaos", txn_id="9XK31337AB"))
    out = capsys.readouterr().out
    assert "9XK31337AB" in out
    assert "account=2000001 credits=5" in out

    asyncio.run(cli.list_transactions("Chaos", txn_id="OTHER"))
    assert "No transactions recorded" in capsys.readouterr().out


def test_unknown_server_exits(configured_groups: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        asyncio.run(cli.credit_balance("Loki", 1))
    assert "Unknown server group 'Loki'" in str(exc.value)


def test_main_dispatches_subcommand(
    configured_groups: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(sys, "argv", ["flux-panel", "credit-balance", "--server", "Chaos", "--account", "7"])

    cli.main()

    assert "Account #7 has never donated on Chaos" in capsys.readouterr().out
