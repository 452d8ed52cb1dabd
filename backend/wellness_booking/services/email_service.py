"""
Email notifications using Resend.

Best-effort by contract: a failed send is logged and reported as False,
never raised. Booking confirmation in the database is the source of truth.
"""

import asyncio
from html import escape

import resend

from wellness_booking.core.logging import get_logger
from wellness_booking.services.interfaces.notifier import (
    BookingConfirmationDetails,
    EmailNotifier,
)

logger = get_logger(__name__)


def format_price(amount_minor_units: int, currency: str) -> str:
    symbol = "$" if currency.lower() == "usd" else f"{currency.upper()} "
    return f"{symbol}{amount_minor_units / 100:.2f}"


def render_booking_confirmation(details: BookingConfirmationDetails) -> str:
    greeting = f"<p>Hi {escape(details.recipient_name)},</p>" if details.recipient_name else ""
    return f"""
    <h1>Booking Confirmation</h1>
    {greeting}
    <p>Thank you for booking {escape(details.title)}!</p>
    <p>Date: {escape(details.date_key)}</p>
    <p>Time: {escape(details.start_time)} - {escape(details.end_time)}</p>
    <p>Price: {format_price(details.price, details.currency)}</p>
    """


class ResendEmailNotifier(EmailNotifier):
    def __init__(self, api_key: str, from_address: str):
        self._api_key = api_key
        self._from_address = from_address
        # The Resend SDK only reads a module-level key
        if api_key:
            resend.api_key = api_key

    async def send_booking_confirmation(
        self, address: str, details: BookingConfirmationDetails
    ) -> bool:
        if not self._api_key:
            logger.warning("email_disabled", to=address, reason="RESEND_API_KEY not set")
            return False

        params = {
            "from": self._from_address,
            "to": [address],
            "subject": f"Booking Confirmation: {details.title}",
            "html": render_booking_confirmation(details),
        }
        try:
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error("email_send_failed", to=address, error=str(e))
            return False

        logger.info("email_sent", to=address, email_id=response.get("id"))
        return True
