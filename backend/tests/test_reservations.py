"""
Reservation status transition tests.
"""

import pytest

from wellness_booking.db.session import run_in_transaction
from wellness_booking.models.reservation import CANCELLED, CONFIRMED
from wellness_booking.services import ledger_service, reservation_service
from wellness_booking.services.reservation_service import CancelOutcome, ConfirmOutcome


async def _confirm(session_factory, reservation_id, at):
    return await run_in_transaction(
        session_factory,
        lambda db: reservation_service.mark_confirmed(db, reservation_id, at),
    )


async def _load(session_factory, reservation_id):
    async with session_factory() as db:
        return await reservation_service.get(db, reservation_id)


@pytest.mark.asyncio
async def test_confirm_is_idempotent(session_factory, orchestrator, yoga_session, clock):
    checkout = await orchestrator.initiate_booking("user-alice", "morning-yoga", "2026-03-04")

    assert await _confirm(session_factory, checkout.reservation_id, clock()) is ConfirmOutcome.OK
    assert (
        await _confirm(session_factory, checkout.reservation_id, clock())
        is ConfirmOutcome.ALREADY_CONFIRMED
    )

    reservation = await _load(session_factory, checkout.reservation_id)
    assert reservation.status == CONFIRMED
    assert reservation.paid_at is not None
    assert reservation.checkout_id == checkout.checkout_id

    async with session_factory() as db:
        occupants = await ledger_service.list_occupants(db, "morning-yoga", "2026-03-04")
        remaining = await ledger_service.get_remaining(db, "morning-yoga", "2026-03-04")
    assert [o.reservation_id for o in occupants].count(checkout.reservation_id) == 1
    assert remaining == yoga_session.capacity - 1


@pytest.mark.asyncio
async def test_confirm_unknown_reservation(session_factory, clock):
    assert await _confirm(session_factory, "missing", clock()) is ConfirmOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_released_reservation_cannot_be_confirmed(
    session_factory, orchestrator, yoga_session, clock
):
    checkout = await orchestrator.initiate_booking("user-alice", "morning-yoga", "2026-03-04")
    reservation = await _load(session_factory, checkout.reservation_id)

    outcome = await run_in_transaction(
        session_factory,
        lambda db: reservation_service.cancel_and_release(
            db, reservation, reason="expired", at=clock()
        ),
    )
    assert outcome is CancelOutcome.OK

    assert (
        await _confirm(session_factory, checkout.reservation_id, clock())
        is ConfirmOutcome.NOT_PENDING
    )
    reservation = await _load(session_factory, checkout.reservation_id)
    assert reservation.status == CANCELLED
    assert reservation.cancellation_reason == "expired"


@pytest.mark.asyncio
async def test_pending_only_cancel_leaves_confirmed_seat(
    session_factory, orchestrator, yoga_session, clock
):
    checkout = await orchestrator.initiate_booking("user-alice", "morning-yoga", "2026-03-04")
    await _confirm(session_factory, checkout.reservation_id, clock())
    reservation = await _load(session_factory, checkout.reservation_id)

    outcome = await run_in_transaction(
        session_factory,
        lambda db: reservation_service.cancel_and_release(
            db, reservation, reason="expired", at=clock(), only_pending=True
        ),
    )
    assert outcome is CancelOutcome.NOT_PENDING

    async with session_factory() as db:
        assert await ledger_service.get_remaining(db, "morning-yoga", "2026-03-04") == 2


@pytest.mark.asyncio
async def test_reservation_keeps_session_snapshot(session_factory, orchestrator, yoga_session):
    checkout = await orchestrator.initiate_booking("user-alice", "morning-yoga", "2026-03-04")
    reservation = await _load(session_factory, checkout.reservation_id)

    assert reservation.session_snapshot["title"] == "Morning Yoga"
    assert reservation.session_snapshot["start_time"] == "09:00"
    assert reservation.session_snapshot["price"] == 2500


@pytest.mark.asyncio
async def test_delete_only_removes_cancelled(session_factory, orchestrator, yoga_session, clock):
    checkout = await orchestrator.initiate_booking("user-alice", "morning-yoga", "2026-03-04")

    assert not await run_in_transaction(
        session_factory, lambda db: reservation_service.delete(db, checkout.reservation_id)
    )

    await orchestrator.cancel_booking("user-alice", checkout.reservation_id)
    assert await run_in_transaction(
        session_factory, lambda db: reservation_service.delete(db, checkout.reservation_id)
    )
    assert await _load(session_factory, checkout.reservation_id) is None
