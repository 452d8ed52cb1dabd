"""
Contact records mirrored from identity-provider token claims.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wellness_booking.core.logging import get_logger
from wellness_booking.core.security import Principal
from wellness_booking.db.session import run_in_transaction
from wellness_booking.models.user import User

logger = get_logger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def record_user(
    session_factory: async_sessionmaker[AsyncSession],
    principal: Principal,
) -> None:
    """Create or refresh the contact record for the authenticated user."""

    async def _upsert(db: AsyncSession) -> None:
        user = await get_user(db, principal.user_id)
        if user is None:
            db.add(User(id=principal.user_id, email=principal.email, display_name=principal.name))
            logger.info("user_recorded", user_id=principal.user_id)
            return
        if principal.email and user.email != principal.email:
            user.email = principal.email
        if principal.name and user.display_name != principal.name:
            user.display_name = principal.name

    try:
        await run_in_transaction(session_factory, _upsert)
    except IntegrityError:
        # A concurrent request inserted the same user first
        logger.debug("user_record_race", user_id=principal.user_id)
