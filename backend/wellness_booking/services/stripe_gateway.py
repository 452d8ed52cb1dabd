"""
Stripe implementation of PaymentGateway.

SECURITY NOTES:
- Webhook signatures are verified on the raw request bytes; re-serializing
  the JSON before verification would invalidate the signature
- The API key is passed per request instead of being set on the stripe
  module, so several gateways (or tests) can coexist in one process
- The Stripe SDK is blocking and runs in a worker thread
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Any, Optional

import stripe

from wellness_booking.core.exceptions import SignatureInvalid
from wellness_booking.core.logging import get_logger
from wellness_booking.core.metrics import checkout_latency
from wellness_booking.schemas.payment import PaymentEvent, parse_provider_event
from wellness_booking.services.interfaces.payment import (
    CheckoutHandle,
    PaymentGateway,
    PaymentGatewayError,
)

logger = get_logger(__name__)


class StripePaymentGateway(PaymentGateway):
    def __init__(self, secret_key: str, webhook_secret: str):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    async def create_checkout(
        self,
        *,
        amount_minor_units: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        expires_at: Optional[datetime] = None,
    ) -> CheckoutHandle:
        params: dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {"name": description},
                    "unit_amount": amount_minor_units,
                },
                "quantity": 1,
            }],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            # Also copied to the payment intent for dashboard lookups
            "payment_intent_data": {"metadata": metadata},
        }
        if expires_at is not None:
            params["expires_at"] = int(expires_at.timestamp())

        started = time.perf_counter()
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self._secret_key,
                idempotency_key=f"checkout-{metadata.get('reservation_id', '')}",
                **params,
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe_checkout_failed",
                reservation_id=metadata.get("reservation_id"),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise PaymentGatewayError(str(e)) from e
        finally:
            checkout_latency.observe(time.perf_counter() - started)

        logger.info(
            "stripe_checkout_created",
            checkout_id=session.id,
            reservation_id=metadata.get("reservation_id"),
        )
        return CheckoutHandle(checkout_id=session.id, redirect_url=session.url)

    def parse_event(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        if not signature:
            raise SignatureInvalid("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalid(str(e)) from e
        except ValueError as e:
            raise SignatureInvalid("Webhook payload is not valid JSON") from e

        return parse_provider_event(json.loads(payload))
