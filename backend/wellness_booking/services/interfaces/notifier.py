"""
Outbound email collaborator interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BookingConfirmationDetails:
    title: str
    date_key: str
    start_time: str
    end_time: str
    price: int  # minor currency units
    currency: str
    recipient_name: Optional[str] = None


class EmailNotifier(ABC):
    """Fire-and-forget notifications. Never raises; reports success as a bool."""

    @abstractmethod
    async def send_booking_confirmation(
        self, address: str, details: BookingConfirmationDetails
    ) -> bool:
        pass
