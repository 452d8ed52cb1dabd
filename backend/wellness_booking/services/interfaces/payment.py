"""
Payment collaborator interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from wellness_booking.schemas.payment import PaymentEvent


@dataclass(frozen=True)
class CheckoutHandle:
    checkout_id: str
    redirect_url: str


class PaymentGatewayError(Exception):
    """Checkout could not be created. Always triggers seat compensation."""


class PaymentGateway(ABC):
    """
    Hosted-checkout payment provider.

    Implementations:
    - StripePaymentGateway: Stripe Checkout + signed webhooks
    """

    @abstractmethod
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
        """
        Create a hosted checkout. `metadata` must be echoed back verbatim on
        the completion event.

        Raises:
            PaymentGatewayError: on any provider or network failure
        """
        pass

    @abstractmethod
    def parse_event(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        """
        Verify `signature` against the raw, untouched request body and parse it.

        Raises:
            SignatureInvalid: missing or invalid signature, or unparsable body
        """
        pass
