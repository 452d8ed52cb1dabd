"""
Payment provider callbacks.

The provider retries any non-2xx response, so the handler is written to be
replayed:
- Confirmation is a conditional UPDATE; a second delivery finds the
  reservation already confirmed and stops before the email step
- Store errors surface as 500 and the provider redelivers; failures after
  the confirmation commits (contact lookup, email) are logged, not raised
- Client errors (bad signature, missing metadata) are 400 and are not retried
  usefully; they are logged at error level for investigation
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wellness_booking.core.config import Settings
from wellness_booking.core.exceptions import (
    DataIntegrityError,
    MetadataMismatch,
    MissingMetadata,
    SignatureInvalid,
)
from wellness_booking.core.logging import get_logger
from wellness_booking.core.metrics import record_webhook_event
from wellness_booking.db.session import run_in_transaction
from wellness_booking.models.reservation import Reservation
from wellness_booking.schemas.payment import CheckoutCompleted, CheckoutExpired, UnknownEvent
from wellness_booking.services import reservation_service, user_service
from wellness_booking.services.booking_service import utcnow
from wellness_booking.services.interfaces.notifier import BookingConfirmationDetails, EmailNotifier
from wellness_booking.services.interfaces.payment import PaymentGateway
from wellness_booking.services.reservation_service import CancelOutcome, ConfirmOutcome

logger = get_logger(__name__)

REASON_CHECKOUT_EXPIRED = "checkout_expired"
REASON_DUPLICATE_PAYMENT = "duplicate_payment"


class PaymentReconciler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        payments: PaymentGateway,
        notifier: EmailNotifier,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._payments = payments
        self._notifier = notifier
        self._settings = settings
        self._clock = clock

    async def handle(self, payload: bytes, signature: Optional[str]) -> None:
        try:
            event = self._payments.parse_event(payload, signature)
        except SignatureInvalid as e:
            record_webhook_event("invalid", "rejected")
            logger.error("webhook_signature_invalid", security_event=True, error=e.detail["message"])
            raise

        logger.info("webhook_received", kind=event.kind, event_id=event.event_id)

        if isinstance(event, CheckoutCompleted):
            result = await self._handle_completed(event)
        elif isinstance(event, CheckoutExpired):
            result = await self._handle_expired(event)
        else:
            result = self._handle_unknown(event)

        record_webhook_event(event.kind, result)

    def _handle_unknown(self, event: UnknownEvent) -> str:
        logger.debug("webhook_ignored", event_id=event.event_id, event_type=event.event_type)
        return "ignored"

    async def _handle_completed(self, event: CheckoutCompleted) -> str:
        meta = event.metadata
        ctx = {"event_id": event.event_id, "checkout_id": event.checkout_id}
        if not meta.reservation_id or not meta.user_id:
            record_webhook_event(event.kind, "rejected")
            logger.error("webhook_missing_metadata", **ctx)
            raise MissingMetadata()

        reservation_id = meta.reservation_id
        now = self._clock()

        async def _confirm(db: AsyncSession) -> tuple[Reservation, ConfirmOutcome]:
            reservation = await reservation_service.get(db, reservation_id)
            if reservation is None:
                logger.error("webhook_unknown_reservation", reservation_id=reservation_id, **ctx)
                raise DataIntegrityError(f"Reservation {reservation_id} not found")
            if reservation.user_id != meta.user_id:
                logger.error(
                    "webhook_metadata_mismatch",
                    reservation_id=reservation_id,
                    metadata_user_id=meta.user_id,
                    **ctx,
                )
                raise MetadataMismatch()
            outcome = await reservation_service.mark_confirmed(db, reservation_id, now)
            return reservation, outcome

        try:
            reservation, outcome = await run_in_transaction(self._session_factory, _confirm)
        except (DataIntegrityError, MetadataMismatch):
            record_webhook_event(event.kind, "rejected")
            raise
        except IntegrityError:
            # Another reservation for the same user and slot was confirmed first
            await self._cancel_duplicate_payment(reservation_id, now, ctx)
            return "duplicate_payment"

        if outcome is ConfirmOutcome.ALREADY_CONFIRMED:
            logger.info("webhook_replayed", reservation_id=reservation_id, **ctx)
            return "replayed"
        if outcome is ConfirmOutcome.NOT_PENDING:
            logger.error(
                "payment_for_inactive_reservation",
                reservation_id=reservation_id,
                refund_required=True,
                **ctx,
            )
            return "inactive"
        if outcome is ConfirmOutcome.NOT_FOUND:
            raise DataIntegrityError(f"Reservation {reservation_id} disappeared during confirmation")

        # Already committed; a redelivery would be a replay and never email
        try:
            await self._send_confirmation(reservation)
        except Exception as e:
            logger.error(
                "confirmation_email_failed",
                reservation_id=reservation_id,
                error=str(e),
                **ctx,
            )
        return "confirmed"

    async def _cancel_duplicate_payment(self, reservation_id: str, now: datetime, ctx: dict) -> None:
        async def _cancel(db: AsyncSession) -> CancelOutcome:
            reservation = await reservation_service.get(db, reservation_id)
            if reservation is None:
                return CancelOutcome.NOT_FOUND
            return await reservation_service.cancel_and_release(
                db, reservation, reason=REASON_DUPLICATE_PAYMENT, at=now, only_pending=True
            )

        outcome = await run_in_transaction(self._session_factory, _cancel)
        logger.error(
            "duplicate_payment",
            reservation_id=reservation_id,
            cancel_outcome=outcome.value,
            refund_required=True,
            **ctx,
        )

    async def _send_confirmation(self, reservation: Reservation) -> None:
        async with self._session_factory() as db:
            user = await user_service.get_user(db, reservation.user_id)
        if user is None or not user.email:
            logger.warning(
                "confirmation_email_skipped",
                reservation_id=reservation.id,
                user_id=reservation.user_id,
                reason="no contact email",
            )
            return

        snapshot = reservation.session_snapshot
        details = BookingConfirmationDetails(
            title=snapshot["title"],
            date_key=reservation.scheduled_date,
            start_time=snapshot["start_time"],
            end_time=snapshot["end_time"],
            price=snapshot["price"],
            currency=self._settings.CURRENCY,
            recipient_name=user.display_name,
        )
        sent = await self._notifier.send_booking_confirmation(user.email, details)
        if not sent:
            logger.warning("confirmation_email_not_sent", reservation_id=reservation.id)

    async def _handle_expired(self, event: CheckoutExpired) -> str:
        reservation_id = event.metadata.reservation_id
        if not reservation_id:
            logger.warning("webhook_expired_without_reservation", checkout_id=event.checkout_id)
            return "ignored"

        now = self._clock()

        async def _expire(db: AsyncSession) -> CancelOutcome:
            reservation = await reservation_service.get(db, reservation_id)
            if reservation is None:
                return CancelOutcome.NOT_FOUND
            return await reservation_service.cancel_and_release(
                db, reservation, reason=REASON_CHECKOUT_EXPIRED, at=now, only_pending=True
            )

        outcome = await run_in_transaction(self._session_factory, _expire)
        logger.info(
            "checkout_expired",
            reservation_id=reservation_id,
            checkout_id=event.checkout_id,
            outcome=outcome.value,
        )
        return "released" if outcome is CancelOutcome.OK else "ignored"
