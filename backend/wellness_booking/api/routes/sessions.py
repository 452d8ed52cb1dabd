"""
Session catalogue and availability endpoints.
"""

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wellness_booking.api.deps import get_clock
from wellness_booking.core.config import Settings, get_settings
from wellness_booking.core.exceptions import SessionNotFound
from wellness_booking.core.logging import get_logger
from wellness_booking.db.session import get_db, get_session_factory
from wellness_booking.models.session_template import SessionTemplate
from wellness_booking.schemas.session import (
    AvailabilityResponse,
    SessionTemplateResponse,
    SlotAvailabilityResponse,
)
from wellness_booking.services.availability_service import project_availability
from wellness_booking.services.cache_service import get_cached_sessions, set_cached_sessions

logger = get_logger(__name__)
router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.get("", response_model=list[SessionTemplateResponse])
async def list_sessions(db: AsyncSession = Depends(get_db)):
    """
    List session templates.
    Results are cached in Redis; templates change only on reseeding.
    """
    cached = await get_cached_sessions()
    if cached is not None:
        logger.info("sessions_list_cache_hit")
        return cached

    result = await db.execute(select(SessionTemplate).order_by(SessionTemplate.start_time))
    sessions = [
        SessionTemplateResponse.model_validate(t).model_dump(mode="json")
        for t in result.scalars().all()
    ]
    await set_cached_sessions(sessions)
    return sessions


@router.get("/{session_id}/availability", response_model=AvailabilityResponse)
async def session_availability(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: Callable[[], datetime] = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    """Upcoming bookable dates with live remaining seats. Never cached."""
    result = await db.execute(select(SessionTemplate).where(SessionTemplate.id == session_id))
    template = result.scalar_one_or_none()
    if template is None:
        raise SessionNotFound()

    slots = await project_availability(
        session_factory,
        template,
        clock(),
        settings.BOOKING_WINDOW_OCCURRENCES,
        settings.studio_tz,
    )
    return AvailabilityResponse(
        session_id=session_id,
        timezone=settings.STUDIO_TIMEZONE,
        slots=[SlotAvailabilityResponse.model_validate(s) for s in slots],
    )
