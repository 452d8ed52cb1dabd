"""
Pytest fixtures for test database, client, collaborators, and authentication.

Each test gets a fresh SQLite file (aiosqlite) with the schema created from
the models. Payment and email collaborators are replaced with in-memory
fakes; the fake gateway keeps Stripe's real webhook signature verification.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

import hashlib
import hmac
import json
import time
from datetime import datetime, time as dtime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wellness_booking.api.deps import get_clock, get_notifier, get_payment_gateway
from wellness_booking.core.config import get_settings
from wellness_booking.core.security import create_access_token
from wellness_booking.db.base import Base
from wellness_booking.db.session import build_session_factory, get_session_factory
from wellness_booking.main import app
from wellness_booking.models.session_template import SessionTemplate
from wellness_booking.schemas.payment import CHECKOUT_COMPLETED, CHECKOUT_EXPIRED
from wellness_booking.services.booking_service import BookingOrchestrator
from wellness_booking.services.interfaces import (
    BookingConfirmationDetails,
    CheckoutHandle,
    EmailNotifier,
    PaymentGatewayError,
)
from wellness_booking.services.stripe_gateway import StripePaymentGateway
from wellness_booking.services.webhook_service import PaymentReconciler

WEBHOOK_SECRET = "whsec_test_secret"

# Monday 2026-03-02, 08:00 in America/Denver (UTC-7 before DST)
FIXED_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakePaymentGateway(StripePaymentGateway):
    """Checkout creation stays in memory; webhook verification is Stripe's own."""

    def __init__(self):
        super().__init__(secret_key="sk_test_unused", webhook_secret=WEBHOOK_SECRET)
        self.fail = False
        self.checkouts: list[dict] = []

    async def create_checkout(self, **kwargs) -> CheckoutHandle:
        if self.fail:
            raise PaymentGatewayError("card processor unavailable")
        checkout_id = f"cs_test_{len(self.checkouts) + 1}"
        self.checkouts.append({"checkout_id": checkout_id, **kwargs})
        return CheckoutHandle(
            checkout_id=checkout_id,
            redirect_url=f"https://checkout.stripe.test/pay/{checkout_id}",
        )


class FakeNotifier(EmailNotifier):
    def __init__(self):
        self.sent: list[tuple[str, BookingConfirmationDetails]] = []

    async def send_booking_confirmation(
        self, address: str, details: BookingConfirmationDetails
    ) -> bool:
        self.sent.append((address, details))
        return True


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh database file per test, schema created from the models."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def payments() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def orchestrator(session_factory, payments, settings, clock) -> BookingOrchestrator:
    return BookingOrchestrator(session_factory, payments, settings, clock)


@pytest.fixture
def reconciler(session_factory, payments, notifier, settings, clock) -> PaymentReconciler:
    return PaymentReconciler(session_factory, payments, notifier, settings, clock)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, payments, notifier, clock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and fake collaborators."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_payment_gateway] = lambda: payments
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add_template(session_factory, **fields) -> SessionTemplate:
    template = SessionTemplate(**fields)
    async with session_factory() as db:
        db.add(template)
        await db.commit()
    return template


@pytest_asyncio.fixture
async def yoga_session(session_factory) -> SessionTemplate:
    """Mondays and Wednesdays 09:00-10:00, three seats."""
    return await _add_template(
        session_factory,
        id="morning-yoga",
        title="Morning Yoga",
        description="Gentle flow",
        price=2500,
        capacity=3,
        start_time=dtime(9, 0),
        end_time=dtime(10, 0),
        recurring_days=[1, 3],
    )


@pytest_asyncio.fixture
async def private_session(session_factory) -> SessionTemplate:
    """One seat on Mondays at 18:00."""
    return await _add_template(
        session_factory,
        id="private-coaching",
        title="Private Coaching",
        price=9000,
        capacity=1,
        start_time=dtime(18, 0),
        end_time=dtime(19, 0),
        recurring_days=[1],
        rotating_topic=True,
    )


def make_auth_headers(user_id: str, email: Optional[str] = None, name: Optional[str] = None) -> dict:
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    return {"Authorization": f"Bearer {create_access_token(data=claims)}"}


@pytest.fixture
def auth_headers() -> dict:
    """Authorization headers for the default test user."""
    return make_auth_headers("user-alice", email="alice@example.com", name="Alice")


@pytest.fixture
def other_auth_headers() -> dict:
    return make_auth_headers("user-bob", email="bob@example.com", name="Bob")


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Stripe-Signature header value for `payload`."""
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_event(
    event_type: str,
    metadata: dict,
    checkout_id: str = "cs_test_1",
    event_id: str = "evt_test_1",
) -> bytes:
    event = {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": checkout_id,
                "object": "checkout.session",
                "payment_status": "paid",
                "amount_total": 2500,
                "metadata": metadata,
            }
        },
    }
    return json.dumps(event).encode()


@pytest.fixture
def send_webhook(client):
    """Post a signed (or deliberately mis-signed) event to the webhook endpoint."""

    async def _send(payload: bytes, signature: Optional[str] = "valid"):
        headers = {"Content-Type": "application/json"}
        if signature == "valid":
            headers["Stripe-Signature"] = sign_payload(payload)
        elif signature is not None:
            headers["Stripe-Signature"] = signature
        return await client.post("/api/v1/webhooks/payment", content=payload, headers=headers)

    return _send


@pytest.fixture
def completed_event():
    def _build(reservation_id: str, user_id: str = "user-alice", **kwargs) -> bytes:
        metadata = {
            "reservation_id": reservation_id,
            "user_id": user_id,
            "session_id": "morning-yoga",
            "price": "2500",
        }
        return checkout_event(CHECKOUT_COMPLETED, metadata, **kwargs)

    return _build


@pytest.fixture
def expired_event():
    def _build(reservation_id: str, user_id: str = "user-alice", **kwargs) -> bytes:
        metadata = {"reservation_id": reservation_id, "user_id": user_id}
        return checkout_event(CHECKOUT_EXPIRED, metadata, **kwargs)

    return _build
