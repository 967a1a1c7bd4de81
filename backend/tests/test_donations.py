import base64
from decimal import Decimal

import pytest

from app.core.config import settings
from app.services import donations


def test_custom_payload_round_trip() -> None:
    encoded = donations.encode_custom_payload(2000001, "Chaos")

    assert donations.decode_custom_payload(encoded) == ("2000001", "Chaos")


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not base64!",
        base64.b64encode(b"\xff\xfe").decode(),
        base64.b64encode(b"[1, 2]").decode(),
        base64.b64encode(b'a:2:{s:10:"account_id";i:1;}').decode(),
    ],
)
def test_custom_payload_decode_failures_yield_empty_values(raw) -> None:
    assert donations.decode_custom_payload(raw) == ("", "")


def test_custom_payload_ignores_non_string_server_name() -> None:
    raw = base64.b64encode(b'{"account_id": 7, "server_name": ["Chaos"]}').decode()

    assert donations.decode_custom_payload(raw) == ("7", "")


@pytest.mark.parametrize(
    ("amount", "rate", "expected"),
    [
        ("10.00", "5", 2),
        ("9.999", "5", 1),
        ("9.99", "5", 1),
        ("4.99", "5", 0),
        ("1.00", "0.25", 4),
        ("-10.00", "5", 0),
    ],
)
def test_compute_credits_floors_gross_by_rate(amount: str, rate: str, expected: int) -> None:
    assert donations.compute_credits(Decimal(amount), Decimal(rate)) == expected


def test_compute_credits_rejects_non_positive_rate() -> None:
    with pytest.raises(ValueError):
        donations.compute_credits(Decimal("10"), Decimal("0"))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("10", "10"), ("9.999", "9.999"), ("1E+30", "1E+30"), ("", "0"), ("abc", "0"), ("NaN", "0"), ("Infinity", "0")],
)
def test_parse_amount_keeps_the_gross_unrounded(raw: str, expected: str) -> None:
    assert donations.parse_amount(raw) == Decimal(expected)


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        ("9.999", Decimal("10.00")),
        ("0.004", Decimal("0.00")),
        ("99999999.99", Decimal("99999999.99")),
        ("99999999.995", None),
        ("100000000", None),
        ("1E+30", None),
        ("-1E+30", None),
    ],
)
def test_ledger_amount_rounds_to_cents_within_column_range(amount: str, expected) -> None:
    assert donations.ledger_amount(Decimal(amount)) == expected


def test_donation_form_targets_business_account() -> None:
    form = donations.build_donation_form(
        account_id=2000001,
        server_name="Chaos",
        notify_url="https://panel.example/api/v1/paypal/notify",
        return_url="https://panel.example/?module=account&action=view",
    )

    fields = form["fields"]
    assert fields["business"] == settings.paypal_business_email
    assert fields["currency_code"] == "USD"
    assert fields["notify_url"] == "https://panel.example/api/v1/paypal/notify"
    assert donations.decode_custom_payload(fields["custom"]) == ("2000001", "Chaos")
    assert form["exchange_rate"] == Decimal("5")
