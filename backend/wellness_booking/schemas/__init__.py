from wellness_booking.schemas.booking import (
    BookingCancelResponse,
    BookingCreate,
    CheckoutResponse,
    ReservationResponse,
)
from wellness_booking.schemas.session import (
    AvailabilityResponse,
    SessionTemplateResponse,
    SlotAvailabilityResponse,
)

__all__ = [
    "BookingCreate", "CheckoutResponse", "ReservationResponse", "BookingCancelResponse",
    "SessionTemplateResponse", "SlotAvailabilityResponse", "AvailabilityResponse",
]
