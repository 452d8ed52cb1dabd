"""
Reservation store and status transitions.

  pending ──(payment callback)──> confirmed
     │                                │
     └──────(cancel / expiry)─────────┴──> cancelled

Transitions are conditional UPDATEs on the current status, so replays and
races resolve inside the database: a duplicate webhook finds nothing to
update and reports ALREADY_CONFIRMED, an expiry sweep racing a confirmation
loses cleanly (or wins, and the confirmation reports NOT_PENDING).
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import delete as sa_delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wellness_booking.core.logging import get_logger
from wellness_booking.core.metrics import record_transition
from wellness_booking.models.reservation import CANCELLED, CONFIRMED, PENDING, Reservation
from wellness_booking.models.session_template import SessionTemplate
from wellness_booking.models.slot import SlotOccupant
from wellness_booking.services import ledger_service

logger = get_logger(__name__)


class ConfirmOutcome(str, Enum):
    OK = "ok"
    ALREADY_CONFIRMED = "already_confirmed"
    NOT_FOUND = "not_found"
    NOT_PENDING = "not_pending"


class CancelOutcome(str, Enum):
    OK = "ok"
    ALREADY_CANCELLED = "already_cancelled"
    NOT_FOUND = "not_found"
    NOT_PENDING = "not_pending"


def new_reservation_id() -> str:
    return uuid.uuid4().hex


async def create(
    db: AsyncSession,
    *,
    reservation_id: str,
    user_id: str,
    template: SessionTemplate,
    date_key: str,
    booked_at: datetime,
) -> Reservation:
    reservation = Reservation(
        id=reservation_id,
        user_id=user_id,
        session_id=template.id,
        scheduled_date=date_key,
        status=PENDING,
        booked_at=booked_at,
        session_snapshot=template.snapshot(),
    )
    db.add(reservation)
    await db.flush()
    return reservation


async def get(db: AsyncSession, reservation_id: str) -> Optional[Reservation]:
    result = await db.execute(select(Reservation).where(Reservation.id == reservation_id))
    return result.scalar_one_or_none()


async def list_by_user(db: AsyncSession, user_id: str) -> list[Reservation]:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.user_id == user_id)
        .order_by(Reservation.booked_at.desc())
    )
    return list(result.scalars().all())


async def find_confirmed(
    db: AsyncSession, user_id: str, session_id: str, date_key: str
) -> Optional[Reservation]:
    result = await db.execute(
        select(Reservation).where(
            Reservation.user_id == user_id,
            Reservation.session_id == session_id,
            Reservation.scheduled_date == date_key,
            Reservation.status == CONFIRMED,
        )
    )
    return result.scalars().first()


async def list_pending_for_slot(
    db: AsyncSession, user_id: str, session_id: str, date_key: str
) -> list[Reservation]:
    result = await db.execute(
        select(Reservation).where(
            Reservation.user_id == user_id,
            Reservation.session_id == session_id,
            Reservation.scheduled_date == date_key,
            Reservation.status == PENDING,
        )
    )
    return list(result.scalars().all())


async def list_stale_pending(db: AsyncSession, older_than: datetime, limit: int = 100) -> list[str]:
    result = await db.execute(
        select(Reservation.id)
        .where(Reservation.status == PENDING, Reservation.booked_at < older_than)
        .order_by(Reservation.booked_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def set_checkout_id(db: AsyncSession, reservation_id: str, checkout_id: str) -> None:
    await db.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .values(checkout_id=checkout_id)
        .execution_options(synchronize_session=False)
    )


async def _current_status(db: AsyncSession, reservation_id: str) -> Optional[str]:
    result = await db.execute(select(Reservation.status).where(Reservation.id == reservation_id))
    return result.scalar_one_or_none()


async def mark_confirmed(db: AsyncSession, reservation_id: str, paid_at: datetime) -> ConfirmOutcome:
    """
    pending -> confirmed. Only succeeds while the reservation still holds its
    seat in the ledger, so a reservation whose seat was released (expired,
    superseded) can never become confirmed.
    """
    holds_seat = (
        select(SlotOccupant.id)
        .where(SlotOccupant.reservation_id == reservation_id)
        .exists()
    )
    result = await db.execute(
        update(Reservation)
        .where(
            Reservation.id == reservation_id,
            Reservation.status == PENDING,
            holds_seat,
        )
        .values(status=CONFIRMED, paid_at=paid_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        record_transition(CONFIRMED)
        logger.info("reservation_confirmed", reservation_id=reservation_id)
        return ConfirmOutcome.OK

    status = await _current_status(db, reservation_id)
    if status is None:
        return ConfirmOutcome.NOT_FOUND
    if status == CONFIRMED:
        return ConfirmOutcome.ALREADY_CONFIRMED
    return ConfirmOutcome.NOT_PENDING


async def mark_cancelled(
    db: AsyncSession,
    reservation_id: str,
    *,
    reason: str,
    at: datetime,
    only_pending: bool = False,
) -> CancelOutcome:
    allowed = [PENDING] if only_pending else [PENDING, CONFIRMED]
    result = await db.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id, Reservation.status.in_(allowed))
        .values(status=CANCELLED, cancelled_at=at, cancellation_reason=reason)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        record_transition(CANCELLED)
        logger.info("reservation_cancelled", reservation_id=reservation_id, reason=reason)
        return CancelOutcome.OK

    status = await _current_status(db, reservation_id)
    if status is None:
        return CancelOutcome.NOT_FOUND
    if status == CANCELLED:
        return CancelOutcome.ALREADY_CANCELLED
    return CancelOutcome.NOT_PENDING


async def cancel_and_release(
    db: AsyncSession,
    reservation: Reservation,
    *,
    reason: str,
    at: datetime,
    only_pending: bool = False,
) -> CancelOutcome:
    """Cancel and give the seat back in the caller's transaction."""
    outcome = await mark_cancelled(
        db, reservation.id, reason=reason, at=at, only_pending=only_pending
    )
    if outcome is CancelOutcome.OK:
        await ledger_service.release(
            db, reservation.session_id, reservation.scheduled_date, reservation.id
        )
    return outcome


async def delete(db: AsyncSession, reservation_id: str) -> bool:
    result = await db.execute(
        sa_delete(Reservation)
        .where(Reservation.id == reservation_id, Reservation.status == CANCELLED)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
