"""
Booking orchestration: reserve a seat, open a pending reservation, hand the
user to hosted checkout, and undo the seat if checkout cannot be started.

FLOW
====

  1. Validate the (session, date) against the availability projection
  2. Reject if the user already holds a confirmed reservation for it
  3. In ONE transaction: supersede the user's own abandoned pending attempts
     for the same slot, take a seat in the ledger, insert the pending
     reservation. Seat and reservation commit together or not at all.
  4. Ask the payment provider for a checkout (outside the transaction; it is
     a network call)
  5. If 4 fails: compensate (cancel + release) and report CHECKOUT_FAILED

Forward-with-compensation:
  Everything after a successful reserve either succeeds or releases the seat
  before returning. If the release itself fails the seat is stuck; that is
  logged at critical level and counted, and the expiry sweep below is the
  only automatic recourse.

Expiry:
  Checkout sessions are created with an expiry slightly past the pending TTL.
  The sweep releases pending reservations older than TTL + grace, by which
  time the provider can no longer accept payment for them.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wellness_booking.core.config import Settings
from wellness_booking.core.exceptions import (
    BookingError,
    CancellationWindowClosed,
    CapacityExhausted,
    CheckoutFailed,
    CompensationFailure,
    DuplicateBooking,
    InvalidSlot,
    ReservationActive,
    ReservationAlreadyCancelled,
    ReservationNotFound,
)
from wellness_booking.core.logging import get_logger
from wellness_booking.core.metrics import (
    compensation_failures,
    expired_reservations,
    record_booking_attempt,
)
from wellness_booking.db.session import run_in_transaction
from wellness_booking.models.reservation import CANCELLED, Reservation
from wellness_booking.models.session_template import SessionTemplate
from wellness_booking.services import ledger_service, reservation_service
from wellness_booking.services.availability_service import bookable_date_keys, occurrence_start
from wellness_booking.services.interfaces.payment import PaymentGateway
from wellness_booking.services.ledger_service import LedgerOutcome
from wellness_booking.services.reservation_service import CancelOutcome

logger = get_logger(__name__)

# Cancellation reasons stored on the reservation
REASON_USER = "user"
REASON_CHECKOUT_FAILED = "checkout_failed"
REASON_SUPERSEDED = "superseded"
REASON_EXPIRED = "expired"

# Stripe rejects expires_at values that land under 30 minutes after request latency
CHECKOUT_EXPIRY_BUFFER = timedelta(minutes=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BookingCheckout:
    reservation_id: str
    checkout_id: str
    redirect_url: str


class BookingOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        payments: PaymentGateway,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._payments = payments
        self._settings = settings
        self._clock = clock

    async def _load_template(self, session_id: str) -> Optional[SessionTemplate]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SessionTemplate).where(SessionTemplate.id == session_id)
            )
            return result.scalar_one_or_none()

    def _reject(self, outcome: str, error: BookingError, **context) -> BookingError:
        record_booking_attempt(outcome)
        logger.info("booking_rejected", outcome=outcome, reason=error.reason, **context)
        return error

    async def initiate_booking(self, user_id: str, session_id: str, date_key: str) -> BookingCheckout:
        settings = self._settings
        now = self._clock()
        ctx = {"user_id": user_id, "session_id": session_id, "date_key": date_key}

        template = await self._load_template(session_id)
        if template is None:
            raise self._reject("invalid_slot", InvalidSlot("Session not found"), **ctx)
        visible = bookable_date_keys(
            template, now, settings.BOOKING_WINDOW_OCCURRENCES, settings.studio_tz
        )
        if date_key not in visible:
            raise self._reject("invalid_slot", InvalidSlot(), **ctx)

        # Cheap pre-check so duplicates never touch the ledger
        async with self._session_factory() as db:
            if await reservation_service.find_confirmed(db, user_id, session_id, date_key):
                raise self._reject("duplicate", DuplicateBooking(), **ctx)

        await ledger_service.ensure_slot(self._session_factory, template, date_key)
        reservation_id = reservation_service.new_reservation_id()

        async def _reserve(db: AsyncSession) -> Reservation:
            if await reservation_service.find_confirmed(db, user_id, session_id, date_key):
                raise DuplicateBooking()
            for abandoned in await reservation_service.list_pending_for_slot(
                db, user_id, session_id, date_key
            ):
                await reservation_service.cancel_and_release(
                    db, abandoned, reason=REASON_SUPERSEDED, at=now, only_pending=True
                )
                logger.info("reservation_superseded", reservation_id=abandoned.id, **ctx)

            outcome = await ledger_service.try_reserve(
                db, session_id, date_key, user_id, reservation_id
            )
            if outcome is LedgerOutcome.CAPACITY_EXHAUSTED:
                raise CapacityExhausted()
            if outcome is LedgerOutcome.NOT_FOUND:
                raise InvalidSlot()
            return await reservation_service.create(
                db,
                reservation_id=reservation_id,
                user_id=user_id,
                template=template,
                date_key=date_key,
                booked_at=now,
            )

        try:
            reservation = await run_in_transaction(self._session_factory, _reserve)
        except DuplicateBooking as e:
            raise self._reject("duplicate", e, **ctx)
        except CapacityExhausted as e:
            raise self._reject("no_availability", e, **ctx)
        except InvalidSlot as e:
            raise self._reject("invalid_slot", e, **ctx)

        logger.info("booking_reserved", reservation_id=reservation_id, **ctx)

        try:
            handle = await self._payments.create_checkout(
                amount_minor_units=template.price,
                currency=settings.CURRENCY,
                description=f"{template.title} ({date_key})",
                success_url=f"{settings.CLIENT_URL}/dashboard?success=true&reservation={reservation_id}",
                cancel_url=f"{settings.CLIENT_URL}/dashboard?canceled=true&reservation={reservation_id}",
                metadata={
                    "reservation_id": reservation_id,
                    "user_id": user_id,
                    "session_id": session_id,
                    "price": str(template.price),
                },
                expires_at=now
                + timedelta(minutes=settings.PENDING_RESERVATION_TTL_MINUTES)
                + CHECKOUT_EXPIRY_BUFFER,
            )
            await run_in_transaction(
                self._session_factory,
                lambda db: reservation_service.set_checkout_id(db, reservation_id, handle.checkout_id),
            )
        except Exception as exc:
            await self._compensate(reservation, now, exc)
            raise self._reject("checkout_failed", CheckoutFailed(), **ctx) from exc

        record_booking_attempt("checkout_created")
        logger.info(
            "booking_initiated",
            reservation_id=reservation_id,
            checkout_id=handle.checkout_id,
            **ctx,
        )
        return BookingCheckout(
            reservation_id=reservation_id,
            checkout_id=handle.checkout_id,
            redirect_url=handle.redirect_url,
        )

    async def _compensate(self, reservation: Reservation, now: datetime, cause: Exception) -> None:
        """Release the seat and cancel the reservation after a failed checkout."""
        try:
            await run_in_transaction(
                self._session_factory,
                lambda db: reservation_service.cancel_and_release(
                    db, reservation, reason=REASON_CHECKOUT_FAILED, at=now
                ),
            )
        except Exception as exc:
            compensation_failures.inc()
            logger.critical(
                "compensation_failed",
                reservation_id=reservation.id,
                session_id=reservation.session_id,
                date_key=reservation.scheduled_date,
                checkout_error=str(cause),
                error=str(exc),
            )
            raise CompensationFailure() from exc

        logger.warning(
            "booking_compensated",
            reservation_id=reservation.id,
            session_id=reservation.session_id,
            date_key=reservation.scheduled_date,
            checkout_error=str(cause),
        )

    async def cancel_booking(self, user_id: str, reservation_id: str) -> Reservation:
        """
        Cancel a reservation and release its seat. Refused once the session
        is less than CANCELLATION_CUTOFF_HOURS away; abandoned pending holds
        that close to the start are left to the expiry sweep.
        """
        settings = self._settings
        now = self._clock()
        cutoff = timedelta(hours=settings.CANCELLATION_CUTOFF_HOURS)

        async def _cancel(db: AsyncSession) -> Reservation:
            reservation = await reservation_service.get(db, reservation_id)
            if reservation is None or reservation.user_id != user_id:
                raise ReservationNotFound()
            if reservation.status == CANCELLED:
                raise ReservationAlreadyCancelled()
            starts_at = occurrence_start(
                reservation.session_snapshot, reservation.scheduled_date, settings.studio_tz
            )
            if now >= starts_at - cutoff:
                raise CancellationWindowClosed(
                    f"Bookings can only be cancelled up to "
                    f"{settings.CANCELLATION_CUTOFF_HOURS} hours before the session starts"
                )

            outcome = await reservation_service.cancel_and_release(
                db, reservation, reason=REASON_USER, at=now
            )
            if outcome is CancelOutcome.ALREADY_CANCELLED:
                raise ReservationAlreadyCancelled()
            await db.refresh(reservation)
            return reservation

        reservation = await run_in_transaction(self._session_factory, _cancel)
        logger.info(
            "booking_cancelled",
            reservation_id=reservation.id,
            user_id=user_id,
            session_id=reservation.session_id,
            date_key=reservation.scheduled_date,
        )
        return reservation

    async def delete_reservation(self, user_id: str, reservation_id: str) -> None:
        """Remove a cancelled reservation from the user's history."""

        async def _delete(db: AsyncSession) -> None:
            reservation = await reservation_service.get(db, reservation_id)
            if reservation is None or reservation.user_id != user_id:
                raise ReservationNotFound()
            if reservation.status != CANCELLED:
                raise ReservationActive()
            await reservation_service.delete(db, reservation_id)

        await run_in_transaction(self._session_factory, _delete)
        logger.info("reservation_deleted", reservation_id=reservation_id, user_id=user_id)

    async def list_reservations(self, user_id: str) -> list[Reservation]:
        async with self._session_factory() as db:
            return await reservation_service.list_by_user(db, user_id)

    async def expire_stale_reservations(self) -> int:
        """Cancel and release pending reservations whose checkout window has passed."""
        settings = self._settings
        now = self._clock()
        older_than = now - timedelta(
            minutes=settings.PENDING_RESERVATION_TTL_MINUTES + settings.EXPIRY_SWEEP_GRACE_MINUTES
        )
        async with self._session_factory() as db:
            stale_ids = await reservation_service.list_stale_pending(db, older_than)

        released = 0
        for stale_id in stale_ids:

            async def _expire(db: AsyncSession, rid: str = stale_id) -> CancelOutcome:
                reservation = await reservation_service.get(db, rid)
                if reservation is None:
                    return CancelOutcome.NOT_FOUND
                return await reservation_service.cancel_and_release(
                    db, reservation, reason=REASON_EXPIRED, at=now, only_pending=True
                )

            outcome = await run_in_transaction(self._session_factory, _expire)
            if outcome is CancelOutcome.OK:
                released += 1
                expired_reservations.inc()
                logger.info("reservation_expired", reservation_id=stale_id)
        return released


async def run_expiry_sweeper(orchestrator: BookingOrchestrator, interval_seconds: int) -> None:
    """Background loop started from the application lifespan."""
    logger.info("expiry_sweeper_started", interval_s=interval_seconds)
    while True:
        try:
            released = await orchestrator.expire_stale_reservations()
            if released:
                logger.info("expiry_sweep_completed", released=released)
        except Exception:
            logger.exception("expiry_sweep_failed")
        await asyncio.sleep(interval_seconds)
