"""
Payment provider webhook.

The raw body is read before any parsing: the signature covers the exact
bytes the provider sent.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from wellness_booking.api.deps import get_reconciler
from wellness_booking.services.webhook_service import PaymentReconciler

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/payment")
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payload = await request.body()
    await reconciler.handle(payload, stripe_signature)
    return {"received": True}
