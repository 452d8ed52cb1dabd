"""
Pydantic schemas for the session catalogue and availability projection.
"""

from datetime import time
from typing import Optional

from pydantic import BaseModel, field_serializer


class SessionTemplateResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    price: int
    capacity: int
    start_time: time
    end_time: time
    recurring_days: list[int]
    specialized_topic: Optional[str] = None
    rotating_topic: bool = False

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def _format_time(self, value: time) -> str:
        return value.strftime("%H:%M")


class SlotAvailabilityResponse(BaseModel):
    date_key: str
    remaining: int
    capacity: int
    topic: Optional[str] = None

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    session_id: str
    timezone: str
    slots: list[SlotAvailabilityResponse]
