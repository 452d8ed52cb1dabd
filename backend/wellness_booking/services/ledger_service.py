"""
Capacity ledger with concurrency-safe seat accounting.

CONCURRENCY STRATEGY: Conditional Update
========================================

Problem:
  Two users try to book the last seat of a (session, date) simultaneously.
  Both read remaining_capacity=1, both write 0, both succeed.
  Result: Overbooking.

Solution:
  Reserving is a single conditional statement:

    UPDATE slots SET remaining_capacity = remaining_capacity - 1,
                     version = version + 1
    WHERE session_id = :s AND date_key = :d AND remaining_capacity > 0

  The database serializes writers on the row and re-evaluates the WHERE
  clause for the loser, so exactly one of N racers for the last seat sees
  rowcount == 1. The occupant row is inserted in the same transaction.
  The CHECK constraints on the table are the final safety net.

  Releasing deletes the occupant row first and only credits a seat if a row
  was actually deleted. Retried or duplicated releases are no-ops.

  No function here reads remaining_capacity and writes it back. Transient
  conflicts (deadlocks, serialization failures, a locked database) surface as
  DBAPIError and are retried by run_in_transaction at the caller.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wellness_booking.core.logging import get_logger
from wellness_booking.models.session_template import SessionTemplate
from wellness_booking.models.slot import Slot, SlotOccupant

logger = get_logger(__name__)


class LedgerOutcome(str, Enum):
    OK = "ok"
    CAPACITY_EXHAUSTED = "capacity_exhausted"
    NOT_FOUND = "not_found"


async def get_slot(db: AsyncSession, session_id: str, date_key: str) -> Optional[Slot]:
    result = await db.execute(
        select(Slot).where(Slot.session_id == session_id, Slot.date_key == date_key)
    )
    return result.scalar_one_or_none()


async def get_remaining(db: AsyncSession, session_id: str, date_key: str) -> Optional[int]:
    """Remaining seats, or None if the slot has not been materialized yet."""
    result = await db.execute(
        select(Slot.remaining_capacity).where(
            Slot.session_id == session_id,
            Slot.date_key == date_key,
        )
    )
    return result.scalar_one_or_none()


async def list_occupants(db: AsyncSession, session_id: str, date_key: str) -> list[SlotOccupant]:
    result = await db.execute(
        select(SlotOccupant)
        .join(Slot, Slot.id == SlotOccupant.slot_id)
        .where(Slot.session_id == session_id, Slot.date_key == date_key)
        .order_by(SlotOccupant.id)
    )
    return list(result.scalars().all())


async def ensure_slot(
    session_factory: async_sessionmaker[AsyncSession],
    template: SessionTemplate,
    date_key: str,
) -> Slot:
    """
    Return the slot for (template, date_key), creating it with full capacity
    if missing. Runs in its own transaction; a concurrent creator losing the
    unique-constraint race simply re-reads the winner's row.
    """
    async with session_factory() as db:
        slot = await get_slot(db, template.id, date_key)
        if slot is not None:
            return slot

        slot = Slot(
            session_id=template.id,
            date_key=date_key,
            capacity=template.capacity,
            remaining_capacity=template.capacity,
            version=1,
        )
        db.add(slot)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.debug("slot_materialize_race", session_id=template.id, date_key=date_key)
            existing = await get_slot(db, template.id, date_key)
            if existing is None:
                raise
            return existing

        logger.info(
            "slot_materialized",
            session_id=template.id,
            date_key=date_key,
            capacity=template.capacity,
        )
        return slot


async def try_reserve(
    db: AsyncSession,
    session_id: str,
    date_key: str,
    user_id: str,
    reservation_id: str,
) -> LedgerOutcome:
    """
    Take one seat for `reservation_id`. Must run inside the caller's
    transaction; the decrement and the occupant insert commit together.
    """
    result = await db.execute(
        update(Slot)
        .where(
            Slot.session_id == session_id,
            Slot.date_key == date_key,
            Slot.remaining_capacity > 0,
        )
        .values(
            remaining_capacity=Slot.remaining_capacity - 1,
            version=Slot.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    slot_id = (
        await db.execute(
            select(Slot.id).where(Slot.session_id == session_id, Slot.date_key == date_key)
        )
    ).scalar_one_or_none()

    if result.rowcount == 0:
        if slot_id is None:
            return LedgerOutcome.NOT_FOUND
        logger.info("ledger_reserve_exhausted", session_id=session_id, date_key=date_key)
        return LedgerOutcome.CAPACITY_EXHAUSTED

    db.add(SlotOccupant(slot_id=slot_id, user_id=user_id, reservation_id=reservation_id))
    await db.flush()

    logger.info(
        "ledger_seat_reserved",
        session_id=session_id,
        date_key=date_key,
        reservation_id=reservation_id,
    )
    return LedgerOutcome.OK


async def release(
    db: AsyncSession,
    session_id: str,
    date_key: str,
    reservation_id: str,
) -> LedgerOutcome:
    """
    Give the seat held by `reservation_id` back. Idempotent: the seat is only
    credited when the occupant row is actually removed.
    """
    slot_id = (
        await db.execute(
            select(Slot.id).where(Slot.session_id == session_id, Slot.date_key == date_key)
        )
    ).scalar_one_or_none()
    if slot_id is None:
        return LedgerOutcome.NOT_FOUND

    deleted = await db.execute(
        delete(SlotOccupant)
        .where(
            SlotOccupant.slot_id == slot_id,
            SlotOccupant.reservation_id == reservation_id,
        )
        .execution_options(synchronize_session=False)
    )
    if deleted.rowcount == 0:
        logger.info(
            "ledger_release_noop",
            session_id=session_id,
            date_key=date_key,
            reservation_id=reservation_id,
        )
        return LedgerOutcome.OK

    await db.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.remaining_capacity < Slot.capacity)
        .values(
            remaining_capacity=Slot.remaining_capacity + 1,
            version=Slot.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    logger.info(
        "ledger_seat_released",
        session_id=session_id,
        date_key=date_key,
        reservation_id=reservation_id,
    )
    return LedgerOutcome.OK
