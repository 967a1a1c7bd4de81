import asyncio
import logging
from pathlib import Path

import httpx
import pytest

from app.core.config import settings
from app.core.logging_config import PAYPAL_LOGGER_NAME, configure_paypal_log
from app.schemas.paypal import IpnNotification
from app.services import paypal as paypal_service

NOTIFICATION = IpnNotification(
    [
        ("txn_id", "61E67681CH3238416"),
        ("payment_status", "Completed"),
        ("item_name", "Donation to Chaos"),
        ("receiver_email", "donations@flux.test"),
        ("mc_gross", "10.00"),
    ]
)


def _install_transport(monkeypatch: pytest.MonkeyPatch, handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []

    async def recording_handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return await handler(request)

    transport = httpx.MockTransport(recording_handler)
    real_async_client = httpx.AsyncClient

    class MockAsyncClient:
        def __init__(self, *args, **kwargs):
            self._client = real_async_client(
                transport=transport, base_url=kwargs.get("base_url", ""), timeout=kwargs.get("timeout")
            )

        async def __aenter__(self):
            return self._client

        async def __aexit__(self, exc_type, exc, tb):
            await self._client.aclose()

    monkeypatch.setattr(paypal_service.httpx, "AsyncClient", MockAsyncClient)
    return seen


def test_verification_body_keeps_field_order_and_encodes_values() -> None:
    body = paypal_service.build_verification_body(NOTIFICATION)
    assert body == (
        "cmd=_notify-validate&txn_id=61E67681CH3238416&payment_status=Completed"
        "&item_name=Donation+to+Chaos&receiver_email=donations%40flux.test&mc_gross=10.00"
    )


def test_verify_posts_back_to_webscr_on_port_80(monkeypatch: pytest.MonkeyPatch) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="VERIFIED", request=request)

    seen = _install_transport(monkeypatch, handler)

    result = asyncio.run(paypal_service.verify_notification(NOTIFICATION))

    assert result.verified is True
    assert result.response_line == "VERIFIED"
    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert request.url.scheme == "http"
    assert request.url.host == "ipnpb.paypal.test"
    assert request.url.path == "/cgi-bin/webscr"
    assert request.url.port in (None, 80)
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert request.content.decode().startswith("cmd=_notify-validate&txn_id=61E67681CH3238416")


def test_verify_uses_last_non_empty_line_case_insensitively(monkeypatch: pytest.MonkeyPatch) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="HTTP noise\r\n\r\nverified\r\n\r\n", request=request)

    _install_transport(monkeypatch, handler)

    result = asyncio.run(paypal_service.verify_notification(NOTIFICATION))
    assert result.verified is True


@pytest.mark.parametrize("body", ["INVALID", "VERIFIED\nINVALID", "", "VERIFIED-ISH", "NOT VERIFIED"])
def test_verify_rejects_anything_but_verified(monkeypatch: pytest.MonkeyPatch, body: str) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body, request=request)

    _install_transport(monkeypatch, handler)

    result = asyncio.run(paypal_service.verify_notification(NOTIFICATION))
    assert result.verified is False
    assert result.error is None


def test_verify_fails_closed_on_connection_error(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"count": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    _install_transport(monkeypatch, handler)

    result = asyncio.run(paypal_service.verify_notification(NOTIFICATION))
    assert result.verified is False
    assert result.error
    assert calls["count"] == 1


def test_verify_treats_error_status_as_unverified(monkeypatch: pytest.MonkeyPatch) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="VERIFIED", request=request)

    _install_transport(monkeypatch, handler)

    result = asyncio.run(paypal_service.verify_notification(NOTIFICATION))
    assert result.verified is False
    assert result.error == "HTTP 503"


def test_ipn_host_accepts_url_style_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "paypal_ipn_host", "https://www.sandbox.paypal.com/cgi-bin/webscr")
    assert paypal_service._base_url() == "http://www.sandbox.paypal.com:80"


def test_verification_steps_are_written_to_paypal_log(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="INVALID", request=request)

    _install_transport(monkeypatch, handler)
    log_path = tmp_path / "logs" / "paypal.log"
    configure_paypal_log(str(log_path))

    asyncio.run(paypal_service.verify_notification(NOTIFICATION))
    for handler_ in logging.getLogger(PAYPAL_LOGGER_NAME).handlers:
        handler_.flush()

    content = log_path.read_text(encoding="utf-8")
    assert "Establishing connection to PayPal server at ipnpb.paypal.test:80" in content
    assert "Notification failed to verify. (recv: INVALID)" in content


def test_parse_notification_decodes_with_declared_charset() -> None:
    notification = paypal_service.parse_notification(b"txn_id=T3&first_name=Jos%E9&charset=windows-1252")

    assert notification["first_name"] == "José"
    assert paypal_service.notification_charset(notification) == "cp1252"
    assert paypal_service.build_verification_body(notification) == (
        "cmd=_notify-validate&txn_id=T3&first_name=Jos%E9&charset=windows-1252"
    )


def test_parse_notification_defaults_to_utf8() -> None:
    notification = paypal_service.parse_notification(b"first_name=Jos%C3%A9&memo=a+b&empty=")

    assert list(notification.items_in_order()) == [("first_name", "José"), ("memo", "a b"), ("empty", "")]
    assert paypal_service.build_verification_body(notification) == (
        "cmd=_notify-validate&first_name=Jos%C3%A9&memo=a+b&empty="
    )


@pytest.mark.parametrize("charset", ["x-unknown", "base64"])
def test_parse_notification_falls_back_to_utf8_for_unusable_charset(charset: str) -> None:
    notification = paypal_service.parse_notification(f"first_name=Jos%C3%A9&charset={charset}".encode("ascii"))

    assert notification["first_name"] == "José"
    assert paypal_service.notification_charset(notification) == "utf-8"
