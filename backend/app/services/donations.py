from __future__ import annotations

import base64
import binascii
import json
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any

from app.core.config import settings

PAYPAL_WEBSCR_URL = "https://www.paypal.com/cgi-bin/webscr"
PAYPAL_SANDBOX_WEBSCR_URL = "https://www.sandbox.paypal.com/cgi-bin/webscr"

CENTS = Decimal("0.01")
MAX_LEDGER_AMOUNT = Decimal("99999999.99")


def encode_custom_payload(account_id: int | str, server_name: str) -> str:
    """Pack the donating account and its server into PayPal's opaque ``custom`` field."""
    raw = json.dumps({"account_id": str(account_id), "server_name": server_name}, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def parse_custom_payload(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        decoded = base64.b64decode(raw.strip(), validate=True)
        data = json.loads(decoded.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def decode_custom_payload(raw: str | None) -> tuple[str, str]:
    """Return ``(account_id, server_name)``; anything undecodable yields empty strings."""
    data = parse_custom_payload(raw) or {}
    account_id = data.get("account_id")
    server_name = data.get("server_name")
    return (
        str(account_id).strip() if isinstance(account_id, (str, int)) and not isinstance(account_id, bool) else "",
        server_name.strip() if isinstance(server_name, str) else "",
    )


def parse_amount(value: str | None) -> Decimal:
    """Gross amount exactly as sent, unrounded; anything unparseable is 0."""
    try:
        amount = Decimal((value or "").strip())
    except InvalidOperation:
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def ledger_amount(amount: Decimal) -> Decimal | None:
    """Round to cents for the ledger, or None when it does not fit a Numeric(10, 2) column."""
    if abs(amount) > MAX_LEDGER_AMOUNT:
        return None
    try:
        return amount.quantize(CENTS)
    except InvalidOperation:
        return None


def compute_credits(amount: Decimal, rate: Decimal | None = None) -> int:
    """floor(amount / rate), never negative."""
    exchange_rate = Decimal(str(rate if rate is not None else settings.credit_exchange_rate))
    if exchange_rate <= 0:
        raise ValueError("Credit exchange rate must be positive")
    credits = (Decimal(amount) / exchange_rate).to_integral_value(rounding=ROUND_FLOOR)
    return max(0, int(credits))


def donation_currency() -> str:
    return (settings.donation_currency or "").strip().upper()


def webscr_url() -> str:
    return PAYPAL_SANDBOX_WEBSCR_URL if "sandbox" in (settings.paypal_ipn_host or "").lower() else PAYPAL_WEBSCR_URL


def checkout_origin() -> str:
    """Scheme and host the donate form posts to."""
    return webscr_url().split("/cgi-bin", 1)[0]


def build_donation_form(*, account_id: int, server_name: str, notify_url: str, return_url: str) -> dict[str, Any]:
    """Fields for the PayPal "web_accept" button rendered on the donate page."""
    fields = {
        "cmd": "_donations",
        "business": settings.paypal_business_email,
        "item_name": f"Donation to {server_name}",
        "currency_code": donation_currency(),
        "no_shipping": "1",
        "notify_url": notify_url,
        "return": return_url,
        "custom": encode_custom_payload(account_id, server_name),
    }
    return {
        "action": webscr_url(),
        "fields": fields,
        "min_amount": settings.donation_min_amount,
        "exchange_rate": settings.credit_exchange_rate,
        "currency": donation_currency(),
    }
