"""
Capacity ledger: one row per (session, date) occurrence plus its occupants.

Key design decisions:
- `remaining_capacity` is denormalized so reserving is a single conditional
  UPDATE instead of a COUNT over occupants
- CHECK constraints keep 0 <= remaining_capacity <= capacity at the DB level
- `version` is bumped on every mutation for optimistic readers and auditing
- Occupants are unique per reservation, which makes release idempotent:
  a second release finds no row to delete and credits nothing
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from wellness_booking.db.base import Base, TimestampMixin


class Slot(Base, TimestampMixin):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), ForeignKey("wellness_sessions.id"), nullable=False)
    date_key = Column(String(10), nullable=False)  # YYYY-MM-DD
    capacity = Column(Integer, nullable=False)
    remaining_capacity = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("session_id", "date_key", name="uq_slot_session_date"),
        CheckConstraint("remaining_capacity >= 0", name="check_slot_remaining_non_negative"),
        CheckConstraint("remaining_capacity <= capacity", name="check_slot_remaining_lte_capacity"),
        CheckConstraint("capacity > 0", name="check_slot_capacity_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<Slot(session={self.session_id}, date={self.date_key}, "
            f"remaining={self.remaining_capacity}/{self.capacity})>"
        )


class SlotOccupant(Base, TimestampMixin):
    __tablename__ = "slot_occupants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False)
    reservation_id = Column(String(32), nullable=False, unique=True)

