from __future__ import annotations

import logging
import re

from app.core.config import settings

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def _is_production() -> bool:
    env = (settings.environment or "").strip().lower()
    return env in {"prod", "production"}


def _append_if(problems: list[str], *, condition: bool, message: str) -> None:
    if condition:
        problems.append(message)


def _validate_dispatch_settings(problems: list[str]) -> None:
    _append_if(
        problems,
        condition=not (settings.default_module or "").strip(),
        message="DEFAULT_MODULE must be set.",
    )
    _append_if(
        problems,
        condition=not (settings.default_action or "").strip(),
        message="DEFAULT_ACTION must be set.",
    )


def _validate_donation_settings(problems: list[str]) -> None:
    _append_if(
        problems,
        condition=settings.credit_exchange_rate <= 0,
        message="CREDIT_EXCHANGE_RATE must be a positive number.",
    )
    _append_if(
        problems,
        condition=not _CURRENCY_RE.fullmatch((settings.donation_currency or "").strip().upper()),
        message="DONATION_CURRENCY must be a three-letter currency code.",
    )
    _append_if(
        problems,
        condition=(settings.paypal_duplicate_txn_policy or "").strip().lower() not in {"allow", "skip"},
        message="PAYPAL_DUPLICATE_TXN_POLICY must be one of: allow | skip.",
    )


def validate_settings() -> None:
    """Fail fast on settings the dispatcher and IPN processor cannot run without."""
    problems: list[str] = []
    _validate_dispatch_settings(problems)
    _validate_donation_settings(problems)
    if problems:
        raise RuntimeError("Configuration checks failed:\n- " + "\n- ".join(problems))


def _validate_core_production_settings(problems: list[str]) -> None:
    secret = (settings.secret_key or "").strip()
    _append_if(
        problems,
        condition=secret in {"", "dev-secret-key"} or len(secret) < 32,
        message="SECRET_KEY must be set to a strong random value (not the dev default).",
    )
    _append_if(
        problems,
        condition=not bool(settings.secure_cookies),
        message="SECURE_COOKIES must be enabled in production.",
    )
    _append_if(
        problems,
        condition=not settings.server_groups,
        message="SERVER_GROUPS must list at least one game server.",
    )


def _validate_paypal_production_settings(problems: list[str]) -> None:
    email = (settings.paypal_business_email or "").strip().lower()
    _append_if(
        problems,
        condition=not email or email.endswith("@localhost"),
        message="PAYPAL_BUSINESS_EMAIL must be set to the receiving PayPal account.",
    )
    _append_if(
        problems,
        condition="sandbox" in (settings.paypal_ipn_host or "").lower(),
        message="PAYPAL_IPN_HOST points at the PayPal sandbox.",
    )


def validate_production_settings() -> None:
    """
    Fail fast on insecure or incomplete settings when running in production.

    Donations are credited from these values, so a misconfigured panel must not start.
    """
    validate_settings()
    if not _is_production():
        return

    problems: list[str] = []
    _validate_core_production_settings(problems)
    _validate_paypal_production_settings(problems)

    if problems:
        raise RuntimeError("Production configuration checks failed:\n- " + "\n- ".join(problems))
