"""
Reservation: one record per booking attempt.

Key design decisions:
- `session_snapshot` freezes the template at booking time; later template
  edits never change what the user paid for
- `session_id` is deliberately not a foreign key for the same reason
- Partial unique index allows any number of pending/cancelled attempts but
  only one confirmed reservation per (user, session, date)
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Index, JSON, String, text

from wellness_booking.db.base import Base, TimestampMixin

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    session_id = Column(String(64), nullable=False)
    scheduled_date = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False, default=PENDING)
    booked_at = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(32), nullable=True)
    checkout_id = Column(String(255), nullable=True)
    session_snapshot = Column(JSON, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')",
            name="check_reservation_status",
        ),
        Index("ix_reservations_slot", "session_id", "scheduled_date"),
        Index("ix_reservations_status_booked_at", "status", "booked_at"),
        Index(
            "uq_reservations_confirmed_slot",
            "user_id",
            "session_id",
            "scheduled_date",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, user={self.user_id}, "
            f"session={self.session_id}, date={self.scheduled_date}, status={self.status})>"
        )
