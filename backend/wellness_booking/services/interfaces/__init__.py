"""
Collaborator interfaces for dependency inversion.
Lets tests and other providers stand in for Stripe and Resend.
"""

from .notifier import BookingConfirmationDetails, EmailNotifier
from .payment import CheckoutHandle, PaymentGateway, PaymentGatewayError

__all__ = [
    'BookingConfirmationDetails',
    'EmailNotifier',
    'CheckoutHandle',
    'PaymentGateway',
    'PaymentGatewayError',
]
