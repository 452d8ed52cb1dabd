"""
Capacity ledger tests.

CRITICAL TEST: concurrent reservations must never oversell a slot.
Each racer runs in its own session/transaction, as separate requests would.
"""

import asyncio

import pytest

from wellness_booking.db.session import run_in_transaction
from wellness_booking.services import ledger_service
from wellness_booking.services.ledger_service import LedgerOutcome

DATE_KEY = "2026-03-04"


async def _remaining(session_factory, session_id="morning-yoga"):
    async with session_factory() as db:
        return await ledger_service.get_remaining(db, session_id, DATE_KEY)


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(session_factory, yoga_session):
    """Ten racers for three seats: exactly three win, the slot ends at zero."""
    await ledger_service.ensure_slot(session_factory, yoga_session, DATE_KEY)

    async def racer(i: int) -> LedgerOutcome:
        return await run_in_transaction(
            session_factory,
            lambda db: ledger_service.try_reserve(
                db, "morning-yoga", DATE_KEY, f"user-{i}", f"res-{i}"
            ),
            max_attempts=20,
            backoff_base=0.01,
        )

    outcomes = await asyncio.gather(*(racer(i) for i in range(10)))

    assert outcomes.count(LedgerOutcome.OK) == 3
    assert outcomes.count(LedgerOutcome.CAPACITY_EXHAUSTED) == 7
    assert await _remaining(session_factory) == 0

    async with session_factory() as db:
        occupants = await ledger_service.list_occupants(db, "morning-yoga", DATE_KEY)
    assert len(occupants) == 3
    assert len({o.user_id for o in occupants}) == 3


@pytest.mark.asyncio
async def test_reserve_missing_slot_is_not_found(session_factory, yoga_session):
    outcome = await run_in_transaction(
        session_factory,
        lambda db: ledger_service.try_reserve(db, "morning-yoga", "2030-01-01", "user-1", "res-1"),
    )
    assert outcome is LedgerOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_release_is_idempotent(session_factory, yoga_session):
    await ledger_service.ensure_slot(session_factory, yoga_session, DATE_KEY)
    await run_in_transaction(
        session_factory,
        lambda db: ledger_service.try_reserve(db, "morning-yoga", DATE_KEY, "user-1", "res-1"),
    )
    assert await _remaining(session_factory) == 2

    for _ in range(2):
        await run_in_transaction(
            session_factory,
            lambda db: ledger_service.release(db, "morning-yoga", DATE_KEY, "res-1"),
        )

    assert await _remaining(session_factory) == 3
    async with session_factory() as db:
        assert await ledger_service.list_occupants(db, "morning-yoga", DATE_KEY) == []


@pytest.mark.asyncio
async def test_release_of_unknown_reservation_credits_nothing(session_factory, yoga_session):
    await ledger_service.ensure_slot(session_factory, yoga_session, DATE_KEY)
    await run_in_transaction(
        session_factory,
        lambda db: ledger_service.try_reserve(db, "morning-yoga", DATE_KEY, "user-1", "res-1"),
    )

    await run_in_transaction(
        session_factory,
        lambda db: ledger_service.release(db, "morning-yoga", DATE_KEY, "res-unknown"),
    )
    assert await _remaining(session_factory) == 2


@pytest.mark.asyncio
async def test_ensure_slot_is_idempotent(session_factory, yoga_session):
    first = await ledger_service.ensure_slot(session_factory, yoga_session, DATE_KEY)
    second = await ledger_service.ensure_slot(session_factory, yoga_session, DATE_KEY)
    assert first.id == second.id
    assert second.remaining_capacity == 3
