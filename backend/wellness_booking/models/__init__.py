from wellness_booking.models.session_template import SessionTemplate
from wellness_booking.models.slot import Slot, SlotOccupant
from wellness_booking.models.reservation import Reservation
from wellness_booking.models.user import User

__all__ = ["SessionTemplate", "Slot", "SlotOccupant", "Reservation", "User"]
