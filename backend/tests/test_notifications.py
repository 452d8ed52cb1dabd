"""
Tests for confirmation email rendering and the Resend notifier.
"""

import pytest

from wellness_booking.services.email_service import (
    ResendEmailNotifier,
    format_price,
    render_booking_confirmation,
)
from wellness_booking.services.interfaces import BookingConfirmationDetails

DETAILS = BookingConfirmationDetails(
    title="Yoga <Flow>",
    date_key="2026-03-09",
    start_time="09:00",
    end_time="10:00",
    price=2500,
    currency="usd",
    recipient_name="Alice",
)


def test_format_price():
    assert format_price(2500, "usd") == "$25.00"
    assert format_price(1999, "eur") == "EUR 19.99"


def test_render_escapes_user_content():
    html = render_booking_confirmation(DETAILS)
    assert "Yoga &lt;Flow&gt;" in html
    assert "2026-03-09" in html
    assert "09:00 - 10:00" in html
    assert "$25.00" in html
    assert "Hi Alice" in html


@pytest.mark.asyncio
async def test_notifier_without_api_key_reports_failure():
    notifier = ResendEmailNotifier(api_key="", from_address="studio@example.com")
    assert await notifier.send_booking_confirmation("alice@example.com", DETAILS) is False


@pytest.mark.asyncio
async def test_notifier_swallows_provider_errors(monkeypatch):
    import resend

    def failing_send(params):
        raise RuntimeError("provider down")

    monkeypatch.setattr(resend.Emails, "send", failing_send)
    notifier = ResendEmailNotifier(api_key="re_test", from_address="studio@example.com")
    assert await notifier.send_booking_confirmation("alice@example.com", DETAILS) is False


@pytest.mark.asyncio
async def test_notifier_sends_through_resend(monkeypatch):
    import resend

    sent = []

    def fake_send(params):
        sent.append(params)
        return {"id": "email_123"}

    monkeypatch.setattr(resend.Emails, "send", fake_send)
    notifier = ResendEmailNotifier(api_key="re_test", from_address="studio@example.com")

    assert await notifier.send_booking_confirmation("alice@example.com", DETAILS) is True
    assert sent[0]["to"] == ["alice@example.com"]
    assert sent[0]["subject"] == "Booking Confirmation: Yoga <Flow>"


@pytest.mark.asyncio
async def test_notifier_sets_resend_key_at_construction(monkeypatch):
    import resend

    monkeypatch.setattr(resend, "api_key", None)
    monkeypatch.setattr(resend.Emails, "send", lambda params: {"id": "email_456"})

    notifier = ResendEmailNotifier(api_key="re_test", from_address="studio@example.com")
    assert resend.api_key == "re_test"

    resend.api_key = "re_other"
    assert await notifier.send_booking_confirmation("alice@example.com", DETAILS) is True
    assert resend.api_key == "re_other"
