"""
Booking endpoints: start a paid booking, list, cancel, and delete reservations.
"""

from fastapi import APIRouter, Depends, status

from wellness_booking.api.deps import get_booking_user, get_orchestrator
from wellness_booking.core.logging import get_logger
from wellness_booking.core.security import Principal, get_current_user
from wellness_booking.schemas.booking import (
    BookingCancelResponse,
    BookingCreate,
    CheckoutResponse,
    ReservationResponse,
)
from wellness_booking.services.booking_service import BookingOrchestrator

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user: Principal = Depends(get_booking_user),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """
    Reserve a seat and open a checkout for it.

    The seat is held by a pending reservation until the payment provider
    confirms payment. If checkout cannot be created the seat is released
    before the error is returned.
    """
    checkout = await orchestrator.initiate_booking(
        user.user_id, booking_data.session_id, booking_data.date_key
    )
    return CheckoutResponse(
        reservation_id=checkout.reservation_id,
        checkout_id=checkout.checkout_id,
        checkout_redirect=checkout.redirect_url,
    )


@router.get("", response_model=list[ReservationResponse])
async def list_user_bookings(
    user: Principal = Depends(get_current_user),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Get all reservations for the authenticated user, newest first."""
    return await orchestrator.list_reservations(user.user_id)


@router.post("/{reservation_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    reservation_id: str,
    user: Principal = Depends(get_current_user),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Cancel a reservation and release its seat."""
    reservation = await orchestrator.cancel_booking(user.user_id, reservation_id)
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        reservation_id=reservation.id,
        status=reservation.status,
    )


@router.delete("/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking_endpoint(
    reservation_id: str,
    user: Principal = Depends(get_current_user),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Remove a cancelled reservation from the user's history."""
    await orchestrator.delete_reservation(user.user_id, reservation_id)
