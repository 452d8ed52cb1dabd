"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    session_id: str = Field(min_length=1, max_length=64)
    date_key: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")


class CheckoutResponse(BaseModel):
    reservation_id: str
    checkout_id: str
    checkout_redirect: str


class ReservationResponse(BaseModel):
    id: str
    session_id: str
    scheduled_date: str
    status: str
    booked_at: datetime
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    session_snapshot: dict[str, Any]

    model_config = {"from_attributes": True}


class BookingCancelResponse(BaseModel):
    message: str
    reservation_id: str
    status: str
