"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from wellness_booking.api.routes import bookings, sessions, webhooks

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(sessions.router)
api_router.include_router(bookings.router)
api_router.include_router(webhooks.router)
