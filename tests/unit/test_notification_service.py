from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from checkout.services.auth import Identity
from checkout.services.fulfillment_service import SignedDownloadLink
from checkout.services.notification_service import MailTransport, NotificationDispatcher
from tests.fakes import FakeMailTransport


def _order(payer_email=None):
    item = SimpleNamespace(title="Song A", attribution_label="Artist X", quantity=1, unit_price=Decimal("9.99"))
    return SimpleNamespace(id=12, total_amount=Decimal("9.99"), currency="USD", payer_email=payer_email, items=[item])


def _link():
    return SignedDownloadLink(
        title="Song A",
        attribution_label="Artist X",
        url="https://files.example.com/tracks/a.mp3?sig=1",
        expires_at=datetime(2026, 1, 1, 12, 15, tzinfo=timezone.utc),
    )


def test_render_lists_items_and_links():
    html = NotificationDispatcher(FakeMailTransport(), ttl_seconds=900).render(
        Identity(user_id="u1", name="Alice"), _order(), [_link()]
    )

    assert "Alice" in html
    assert "#12" in html
    assert "9.99 USD" in html
    assert "https://files.example.com/tracks/a.mp3?sig=1" in html
    assert "15 minutes" in html


def test_render_without_links():
    html = NotificationDispatcher(FakeMailTransport()).render(Identity(user_id="u1"), _order(), [])

    assert "Your downloads are not ready yet" in html


@pytest.mark.asyncio
async def test_sends_to_account_email():
    mail = FakeMailTransport()

    await NotificationDispatcher(mail).send_order_confirmation(
        Identity(user_id="u1", email="alice@example.com"), _order("payer@example.com"), [_link()]
    )

    assert [m["recipient"] for m in mail.sent] == ["alice@example.com"]
    assert mail.sent[0]["subject"] == "Your order #12 is confirmed"


@pytest.mark.asyncio
async def test_falls_back_to_payer_email():
    mail = FakeMailTransport()

    await NotificationDispatcher(mail).send_order_confirmation(Identity(user_id="u1"), _order("payer@example.com"), [])

    assert mail.sent[0]["recipient"] == "payer@example.com"


@pytest.mark.asyncio
async def test_no_recipient_sends_nothing():
    mail = FakeMailTransport()

    await NotificationDispatcher(mail).send_order_confirmation(Identity(user_id="u1"), _order(), [])

    assert mail.sent == []


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed():
    mail = FakeMailTransport(fail=True)

    await NotificationDispatcher(mail).send_order_confirmation(
        Identity(user_id="u1", email="alice@example.com"), _order(), [_link()]
    )

    assert mail.sent == []


@pytest.mark.asyncio
async def test_mail_transport_builds_message(monkeypatch):
    sent = {}

    async def fake_send(message, **kwargs):
        sent["message"] = message
        sent["kwargs"] = kwargs

    monkeypatch.setattr("checkout.services.notification_service.aiosmtplib.send", fake_send)
    transport = MailTransport(
        host="smtp.example.com",
        port=2525,
        username="user",
        password="pass",
        start_tls=False,
        sender="shop@example.com",
        sender_name="Shop",
    )

    await transport.send("alice@example.com", "Hello", "<p>hi</p>")

    message = sent["message"]
    assert message["To"] == "alice@example.com"
    assert message["From"] == "Shop <shop@example.com>"
    assert message["Subject"] == "Hello"
    assert sent["kwargs"] == {
        "hostname": "smtp.example.com",
        "port": 2525,
        "username": "user",
        "password": "pass",
        "start_tls": False,
    }
