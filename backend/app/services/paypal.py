from __future__ import annotations

import codecs
import logging
from urllib.parse import parse_qsl, quote_plus

import httpx

from app.core.config import settings
from app.core.logging_config import PAYPAL_LOGGER_NAME
from app.schemas.paypal import IpnNotification, VerificationResult

paypal_log = logging.getLogger(PAYPAL_LOGGER_NAME)

VERIFY_COMMAND = "cmd=_notify-validate"
VERIFY_PATH = "/cgi-bin/webscr"
VERIFY_PORT = 80
VERIFIED = "VERIFIED"
DEFAULT_CHARSET = "utf-8"


def _ipn_host() -> str:
    host = (settings.paypal_ipn_host or "www.paypal.com").strip()
    for scheme in ("http://", "https://"):
        if host.lower().startswith(scheme):
            host = host[len(scheme):]
    return host.split("/", 1)[0] or "www.paypal.com"


def _base_url() -> str:
    return f"http://{_ipn_host()}:{VERIFY_PORT}"


def _codec(name: str | None) -> str:
    try:
        codec = codecs.lookup((name or "").strip() or DEFAULT_CHARSET).name
        b"".decode(codec)
    except LookupError:
        return DEFAULT_CHARSET
    return codec


def notification_charset(notification: IpnNotification) -> str:
    """Codec named by the IPN's ``charset`` field, utf-8 when absent or unknown."""
    return _codec(notification.get("charset"))


def parse_notification(body: bytes) -> IpnNotification:
    """Split a raw IPN body into fields, decoding values with the charset PayPal declared.

    Percent-escapes are first read as latin-1 so every byte survives until the real charset is known.
    """
    raw_pairs = parse_qsl(body.decode("latin-1"), keep_blank_values=True, encoding="latin-1")
    charset = _codec(next((value for key, value in raw_pairs if key == "charset"), None))
    return IpnNotification(
        (key, value.encode("latin-1").decode(charset, errors="replace")) for key, value in raw_pairs
    )


def build_verification_body(notification: IpnNotification) -> str:
    """Re-encode the notification exactly as received, prefixed with the validate command."""
    charset = notification_charset(notification)
    encoded = "&".join(
        f"{quote_plus(key)}={quote_plus(value, encoding=charset, errors='replace')}"
        for key, value in notification.items_in_order()
    )
    return f"{VERIFY_COMMAND}&{encoded}" if encoded else VERIFY_COMMAND


def _last_line(body: str) -> str:
    for line in reversed(body.splitlines()):
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


async def verify_notification(notification: IpnNotification) -> VerificationResult:
    """Post the notification back to PayPal and report whether it answered VERIFIED.

    A single attempt is made. Transport errors, error statuses and any final line other than
    VERIFIED all count as not verified.
    """
    body = build_verification_body(notification)
    payload = body.encode("utf-8")
    paypal_log.info("Query string: %s", body)
    paypal_log.info("Establishing connection to PayPal server at %s:%d...", _ipn_host(), VERIFY_PORT)
    try:
        async with httpx.AsyncClient(
            base_url=_base_url(), timeout=httpx.Timeout(settings.paypal_verify_timeout_seconds)
        ) as client:
            resp = await client.post(
                VERIFY_PATH,
                content=payload,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
    except httpx.HTTPError as exc:
        reason = str(exc) or exc.__class__.__name__
        paypal_log.warning("Failed to connect to PayPal server: %s", reason)
        return VerificationResult(verified=False, error=reason)

    paypal_log.info("Connected. Sent %d bytes of transaction data.", len(payload))
    paypal_log.info("Reading back response from PayPal...")
    if resp.status_code >= 400:
        paypal_log.warning("PayPal answered with HTTP %d, treating notification as unverified.", resp.status_code)
        return VerificationResult(verified=False, error=f"HTTP {resp.status_code}")

    line = _last_line(resp.text).upper()
    paypal_log.info("Received line: %s", line or "(empty)")
    if line == VERIFIED:
        paypal_log.info("Notification verified. (recv: VERIFIED)")
        return VerificationResult(verified=True, response_line=line)

    paypal_log.info("Notification failed to verify. (recv: %s)", line or "(empty)")
    return VerificationResult(verified=False, response_line=line)
