from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import anyio
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging_config import PAYPAL_LOGGER_NAME
from app.db.session import ServerGroup, ServerGroupRegistry
from app.models.donation import PAYPAL_AUDIT_FIELDS, DonationCredit, PaypalTransaction
from app.models.login import ACCOUNT_ID_MAX, LoginAccount
from app.schemas.paypal import IpnIssue, IpnNotification, IpnOutcome, IpnResult
from app.services import donations, paypal

paypal_log = logging.getLogger(PAYPAL_LOGGER_NAME)

WEB_ACCEPT = "web_accept"
COMPLETED = "Completed"
DUPLICATE_POLICIES = {"allow", "skip"}
_UNSAFE_PATH_PARTS = ("..", "/", "\\")


@dataclass
class _Target:
    account_id: str
    server_name: str
    group: ServerGroup | None = None
    exchangeable: bool = False
    issues: list[IpnIssue] = field(default_factory=list)


def accepted_receiver_emails() -> set[str]:
    emails = [settings.paypal_business_email, *settings.paypal_receiver_emails]
    return {email.strip().lower() for email in emails if email and email.strip()}


def duplicate_policy() -> str:
    policy = (settings.paypal_duplicate_txn_policy or "allow").strip().lower()
    return policy if policy in DUPLICATE_POLICIES else "allow"


def _safe_path_part(value: str) -> str:
    cleaned = value or ""
    for part in _UNSAFE_PATH_PARTS:
        cleaned = cleaned.replace(part, "")
    return cleaned.strip() or "unknown"


def archive_path_for(notification: IpnNotification, base_dir: str | Path | None = None) -> Path:
    base = Path(base_dir if base_dir is not None else settings.transaction_log_dir)
    return (
        base
        / _safe_path_part(notification.get("txn_type"))
        / _safe_path_part(notification.get("payment_status"))
        / f"{_safe_path_part(notification.get('txn_id'))}.log"
    )


def _write_archive(path: Path, lines: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        fh.writelines(lines)


async def archive_notification(notification: IpnNotification, base_dir: str | Path | None = None) -> Path | None:
    """Save the raw fields as ``key: value`` lines; failures are logged, never raised."""
    path = archive_path_for(notification, base_dir)
    lines = [f"{key}: {value}\n" for key, value in notification.items_in_order()]
    try:
        await anyio.to_thread.run_sync(_write_archive, path, lines)
    except OSError as exc:
        paypal_log.error("Failed to save transaction details for %s to file. (%s)", notification.get("txn_id"), exc)
        return None
    return path


def _fit(column: str, value: str | None) -> str | None:
    if not value:
        return None
    length = PaypalTransaction.__table__.c[column].type.length
    return value[:length] if length else value


def _audit_row(notification: IpnNotification, *, account_id: str, server_name: str, credits: int) -> PaypalTransaction:
    values = {name: _fit(name, notification.get(name)) for name in PAYPAL_AUDIT_FIELDS}
    return PaypalTransaction(
        account_id=_fit("account_id", account_id),
        server_name=_fit("server_name", server_name),
        credits=credits,
        referrer_id=_fit("referrer_id", notification.get("receiver_id")),
        **values,
    )


async def _already_credited(session: AsyncSession, txn_id: str) -> bool:
    if not txn_id:
        return False
    stmt = (
        select(func.count())
        .select_from(PaypalTransaction)
        .where(PaypalTransaction.txn_id == txn_id, PaypalTransaction.credits > 0)
    )
    return int((await session.execute(stmt)).scalar_one()) > 0


async def _load_donor(session: AsyncSession, account_id: str) -> LoginAccount | None:
    try:
        key = int(account_id)
    except ValueError:
        return None
    if not 0 <= key <= ACCOUNT_ID_MAX:
        return None
    account = await session.get(LoginAccount, key)
    if account is None or not account.accepts_donations:
        return None
    return account


async def _exchange_for_credits(
    session: AsyncSession, notification: IpnNotification, target: _Target, issues: list[IpnIssue]
) -> int:
    account = await _load_donor(session, target.account_id)
    if account is None:
        paypal_log.info(
            "Unknown account #%s on server %s, cannot exchange for credits.", target.account_id, target.server_name
        )
        issues.append(IpnIssue.unknown_account)
        return 0

    txn_id = notification.get("txn_id")
    if await _already_credited(session, txn_id):
        issues.append(IpnIssue.duplicate_txn)
        if duplicate_policy() == "skip":
            paypal_log.warning("Transaction %s was already credited, skipping credit exchange.", txn_id)
            return 0
        paypal_log.warning("Transaction %s was already credited, crediting again.", txn_id)

    amount = donations.parse_amount(notification.get("mc_gross"))
    stored_amount = donations.ledger_amount(amount)
    if stored_amount is None:
        paypal_log.error(
            "Donation amount %s is out of range, cannot exchange for credits.", notification.get("mc_gross")
        )
        issues.append(IpnIssue.invalid_amount)
        return 0

    credit = await session.get(DonationCredit, account.account_id)
    if credit is None:
        paypal_log.info("Identified as first-time donation to the server from this account.")
        credit = DonationCredit(account_id=account.account_id, balance=0, last_donation_amount=Decimal("0.00"))
        session.add(credit)
        await session.flush()

    try:
        credits = donations.compute_credits(amount)
    except ValueError as exc:
        paypal_log.error("Cannot exchange %s for credits: %s", amount, exc)
        return 0
    previous = int(credit.balance or 0)
    paypal_log.info("Updating account credit balance from %s to %s", previous, previous + credits)
    await session.execute(
        update(DonationCredit)
        .where(DonationCredit.account_id == account.account_id)
        .values(
            balance=DonationCredit.balance + credits,
            last_donation_amount=stored_amount,
            last_donation_date=datetime.now(timezone.utc),
        )
    )
    return credits


async def _record(
    group: ServerGroup,
    notification: IpnNotification,
    target: _Target,
    issues: list[IpnIssue],
    *,
    exchange: bool,
) -> tuple[int, bool]:
    """Credit (when asked) and write the audit row for one server group in a single transaction."""
    credits = 0
    try:
        async with group.session_factory() as session:
            if exchange:
                credits = await _exchange_for_credits(session, notification, target, issues)
                if credits:
                    paypal_log.info("Deposited credits.")
            paypal_log.info("Saving transaction details to PayPal transactions table...")
            session.add(
                _audit_row(notification, account_id=target.account_id, server_name=target.server_name, credits=credits)
            )
            await session.commit()
    except (SQLAlchemyError, OverflowError) as exc:
        # Drivers raise OverflowError on out-of-range binds without SQLAlchemy wrapping it.
        paypal_log.error(
            "Failed to save information in PayPal transactions table for server %s. (%s)", group.name, exc
        )
        issues.append(IpnIssue.database_write_failure)
        return 0, False

    paypal_log.info(
        "Stored information in PayPal transactions table for server %s.", target.server_name or "(unknown)"
    )
    return credits, True


def _resolve_target(notification: IpnNotification, registry: ServerGroupRegistry) -> _Target:
    raw_custom = notification.get("custom")
    account_id, server_name = donations.decode_custom_payload(raw_custom)
    target = _Target(account_id=account_id, server_name=server_name)
    if raw_custom and donations.parse_custom_payload(raw_custom) is None:
        paypal_log.info("Custom field could not be decoded, account and server are unknown.")
        target.issues.append(IpnIssue.decode_failure)

    currency = notification.get("mc_currency")[:3].upper()
    expected = donations.donation_currency()
    target.exchangeable = currency == expected
    if not target.exchangeable:
        paypal_log.info(
            "Transaction currency not exchangeable, accepting anyways. (recv: %s, expected: %s)", currency, expected
        )
        target.issues.append(IpnIssue.currency_mismatch)

    paypal_log.info("Received %s (%s).", notification.get("mc_gross"), currency)
    settle_amount = notification.get("settle_amount")
    settle_currency = notification.get("settle_currency")
    if settle_amount and settle_currency:
        paypal_log.info("Deposited into PayPal account: %s %s.", settle_amount, settle_currency)

    paypal_log.info(
        "Game server name: %s, account ID: %s", server_name or "(absent)", account_id or "(absent)"
    )
    if not account_id or not server_name:
        paypal_log.info("Account ID and/or game server name absent, cannot exchange for credits.")
        target.issues.append(IpnIssue.missing_target)
    elif notification.get("txn_type") != WEB_ACCEPT:
        paypal_log.info("Transaction type is not web_accept, amount will not be exchanged for credits.")
        target.issues.append(IpnIssue.unsupported_txn_type)
    else:
        target.group = registry.get(server_name)
        if target.group is None:
            paypal_log.info('Unknown game server "%s", cannot process donation for credits.', server_name)
            target.issues.append(IpnIssue.unknown_server)
    return target


async def process_notification(
    notification: IpnNotification,
    *,
    registry: ServerGroupRegistry,
    remote_addr: str | None = None,
) -> IpnResult:
    """Verify one IPN with PayPal, credit the donor when eligible, then audit and archive it.

    Only a failed verification or an unrecognised receiver stops processing early; every other
    problem narrows what gets credited and is reported in ``IpnResult.issues``.
    """
    txn_id = notification.get("txn_id")
    paypal_log.info("Received notification from %s", remote_addr or "(unknown)")

    verification = await paypal.verify_notification(notification)
    if not verification.verified:
        issue = IpnIssue.connection_failure if verification.error else IpnIssue.verification_rejected
        paypal_log.info("Transaction invalid, aborting.")
        return IpnResult(outcome=IpnOutcome.unverified, txn_id=txn_id, issues=[issue])

    paypal_log.info("Proceeding to validate the authenticity of the transaction...")
    paypal_log.info("Transaction identified as %s.", txn_id)

    receiver_email = notification.get("receiver_email")
    if receiver_email.strip().lower() not in accepted_receiver_emails():
        paypal_log.info("Receiver e-mail (%s) is not recognized, unauthorized to continue.", receiver_email)
        return IpnResult(
            outcome=IpnOutcome.unauthorized_receiver, txn_id=txn_id, issues=[IpnIssue.unauthorized_receiver]
        )

    target = _resolve_target(notification, registry)
    issues = list(target.issues)

    completed = notification.get("payment_status") == COMPLETED
    if completed:
        paypal_log.info("Payment for txn_id#%s has been completed.", txn_id)
    else:
        paypal_log.info(
            "Incomplete payment status: %s (exchanging for credits will not take place)",
            notification.get("payment_status"),
        )
        issues.append(IpnIssue.incomplete_payment)

    credits = 0
    audit_rows = 0
    if target.group is not None:
        exchange = completed and target.exchangeable
        credits, stored = await _record(target.group, notification, target, issues, exchange=exchange)
        audit_rows += int(stored)
    else:
        for group in registry:
            _, stored = await _record(group, notification, target, issues, exchange=False)
            audit_rows += int(stored)

    paypal_log.info("Saving transaction details for %s...", txn_id)
    archived = await archive_notification(notification)
    if archived is not None:
        paypal_log.info("Saved transaction details for %s to: %s", txn_id, archived)
    else:
        issues.append(IpnIssue.file_write_failure)

    paypal_log.info("Done processing %s.", txn_id)
    return IpnResult(
        outcome=IpnOutcome.processed_with_credits if credits > 0 else IpnOutcome.processed_without_credits,
        txn_id=txn_id,
        account_id=target.account_id,
        server_name=target.server_name,
        credits=credits,
        audit_rows=audit_rows,
        archive_path=str(archived) if archived is not None else None,
        issues=issues,
    )
