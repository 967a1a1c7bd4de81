import argparse
import asyncio

from sqlalchemy import select

from app.db.session import ServerGroup, ServerGroupRegistry
from app.models.donation import DonationCredit, PaypalTransaction


def _require_group(registry: ServerGroupRegistry, name: str) -> ServerGroup:
    group = registry.get(name)
    if group is None:
        known = ", ".join(registry.names()) or "(none)"
        raise SystemExit(f"Unknown server group {name!r}; configured: {known}")
    return group


async def init_db() -> None:
    registry = ServerGroupRegistry.from_settings()
    try:
        await registry.create_all()
    finally:
        await registry.dispose()
    print(f"Tables ready on {len(registry)} server group(s)")


async def list_transactions(server: str, *, txn_id: str | None = None, limit: int = 20) -> None:
    registry = ServerGroupRegistry.from_settings()
    try:
        group = _require_group(registry, server)
        stmt = select(PaypalTransaction).order_by(PaypalTransaction.id.desc()).limit(limit)
        if txn_id:
            stmt = stmt.where(PaypalTransaction.txn_id == txn_id)
        async with group.session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
    finally:
        await registry.dispose()

    if not rows:
        print("No transactions recorded")
        return
    for row in rows:
        print(
            f"{row.process_date:%Y-%m-%d %H:%M:%S}  {row.txn_id or '-':<20} {row.payment_status or '-':<12} "
            f"{row.mc_gross or '-':>10} {row.mc_currency or '':<3}  account={row.account_id or '-'} credits={row.credits}"
        )


async def credit_balance(server: str, account_id: int) -> None:
    registry = ServerGroupRegistry.from_settings()
    try:
        group = _require_group(registry, server)
        async with group.session_factory() as session:
            credit = await session.get(DonationCredit, account_id)
    finally:
        await registry.dispose()

    if credit is None:
        print(f"Account #{account_id} has never donated on {server}")
        return
    last = f"{credit.last_donation_date:%Y-%m-%d %H:%M:%S}" if credit.last_donation_date else "never"
    print(f"Account #{account_id} on {server}: balance={credit.balance} last_donation={credit.last_donation_amount} ({last})")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flux control panel utilities")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create the Flux tables on every configured server group")

    txns = subparsers.add_parser("list-transactions", help="Show recent PayPal transactions for a server group")
    txns.add_argument("--server", required=True, help="Server group name")
    txns.add_argument("--txn-id", help="Only show rows for this PayPal transaction id")
    txns.add_argument("--limit", type=int, default=20, help="Maximum rows to show")

    balance = subparsers.add_parser("credit-balance", help="Show an account's donation credit balance")
    balance.add_argument("--server", required=True, help="Server group name")
    balance.add_argument("--account", required=True, type=int, help="Account id")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "init-db":
        asyncio.run(init_db())
        return True

    if args.command == "list-transactions":
        asyncio.run(list_transactions(args.server, txn_id=args.txn_id, limit=args.limit))
        return True

    if args.command == "credit-balance":
        asyncio.run(credit_balance(args.server, args.account))
        return True

    return False


def main():
    parser = _build_parser()
    args = parser.parse_args()
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
