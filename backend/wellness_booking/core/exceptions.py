"""
Booking error taxonomy.

Every rejection carries a stable `reason` code so clients can render the
right message ("no spots left", "already booked", "please try again")
without parsing free text. Errors are HTTPExceptions so they can be raised
from services and rendered directly by the API layer.
"""

from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class BookingError(HTTPException):
    reason: str = "BOOKING_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Booking request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or type(self).message
        super().__init__(
            status_code=type(self).status_code,
            detail={"reason": self.reason, "message": self.message},
        )


# Validation / user-facing

class InvalidSlot(BookingError):
    reason = "INVALID_SLOT"
    status_code = 422
    message = "This session is not bookable on the requested date"


class DuplicateBooking(BookingError):
    reason = "DUPLICATE"
    status_code = status.HTTP_409_CONFLICT
    message = "You already have a booking for this session on this date"


class CapacityExhausted(BookingError):
    reason = "NO_AVAILABILITY"
    status_code = status.HTTP_409_CONFLICT
    message = "No spots left for this date"


class CheckoutFailed(BookingError):
    reason = "CHECKOUT_FAILED"
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Could not start payment. Please try again."


class ServiceUnavailable(BookingError):
    reason = "SERVICE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Booking failed due to high demand. Please try again."


class ReservationNotFound(BookingError):
    reason = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Booking not found"


class SessionNotFound(BookingError):
    reason = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Session not found"


class ReservationAlreadyCancelled(BookingError):
    reason = "ALREADY_CANCELLED"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Booking is already cancelled"


class CancellationWindowClosed(BookingError):
    reason = "CANCELLATION_WINDOW_CLOSED"
    status_code = status.HTTP_409_CONFLICT
    message = "This booking can no longer be cancelled"


class ReservationActive(BookingError):
    reason = "RESERVATION_ACTIVE"
    status_code = status.HTTP_409_CONFLICT
    message = "Cancel the booking before deleting it"


# Payment callback

class SignatureInvalid(BookingError):
    reason = "INVALID_SIGNATURE"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Webhook signature verification failed"


class MissingMetadata(BookingError):
    reason = "MISSING_METADATA"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Checkout metadata is missing"


class MetadataMismatch(BookingError):
    reason = "METADATA_MISMATCH"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Checkout metadata does not match the reservation"


class DataIntegrityError(BookingError):
    # 500 on purpose: the provider redelivers, the record may just be lagging
    reason = "DATA_INTEGRITY"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Reservation referenced by payment was not found"


class CompensationFailure(BookingError):
    reason = "COMPENSATION_FAILED"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Could not start payment and the reserved seat could not be released"


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"reason": exc.reason, "message": exc.message},
        headers=exc.headers,
    )
