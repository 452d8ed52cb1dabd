"""
User contact record.

Identity is owned by the external provider; this table only mirrors the
token claims needed to send booking confirmations.
"""

from sqlalchemy import Column, String

from wellness_booking.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    display_name = Column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
