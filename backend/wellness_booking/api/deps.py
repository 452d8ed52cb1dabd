"""
Request dependencies for the collaborators built in the application lifespan.

Everything here reads from `app.state`; tests swap collaborators with
`app.dependency_overrides` instead of patching module globals.
"""

from datetime import datetime
from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wellness_booking.core.config import Settings, get_settings
from wellness_booking.core.security import Principal, get_current_user
from wellness_booking.db.session import get_session_factory
from wellness_booking.services import user_service
from wellness_booking.services.booking_service import BookingOrchestrator, utcnow
from wellness_booking.services.interfaces import EmailNotifier, PaymentGateway
from wellness_booking.services.webhook_service import PaymentReconciler


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_notifier(request: Request) -> EmailNotifier:
    return request.app.state.notifier


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_orchestrator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    payments: PaymentGateway = Depends(get_payment_gateway),
    clock: Callable[[], datetime] = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> BookingOrchestrator:
    return BookingOrchestrator(session_factory, payments, settings, clock)


def get_reconciler(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    payments: PaymentGateway = Depends(get_payment_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> PaymentReconciler:
    return PaymentReconciler(session_factory, payments, notifier, settings, clock)


async def get_booking_user(
    principal: Principal = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Principal:
    """Authenticated caller, with their contact record refreshed from the token."""
    await user_service.record_user(session_factory, principal)
    return principal
