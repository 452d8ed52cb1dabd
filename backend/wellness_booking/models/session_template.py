"""
Recurring wellness session template.

A template describes a class that repeats on fixed weekdays at a fixed
studio-local time. Bookable occurrences are derived from it by the
availability projector; seats per occurrence live in the slot ledger.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, JSON, String, Text, Time

from wellness_booking.db.base import Base, TimestampMixin


class SessionTemplate(Base, TimestampMixin):
    __tablename__ = "wellness_sessions"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)  # minor currency units
    capacity = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    # Weekdays 0-6, Sunday = 0
    recurring_days = Column(JSON, nullable=False, default=list)
    specialized_topic = Column(String(100), nullable=True)
    rotating_topic = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_session_capacity_positive"),
        CheckConstraint("price >= 0", name="check_session_price_non_negative"),
    )

    def snapshot(self) -> dict:
        """Copy of the fields a reservation keeps after booking."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "capacity": self.capacity,
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "recurring_days": list(self.recurring_days or []),
            "specialized_topic": self.specialized_topic,
        }

    def __repr__(self) -> str:
        return f"<SessionTemplate(id={self.id}, title={self.title}, days={self.recurring_days})>"
