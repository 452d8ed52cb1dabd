"""
Payment provider events as a closed set of kinds.

Provider payloads are parsed once, after signature verification, into one of
the models below. Anything that is not a checkout completion or expiry
becomes an UnknownEvent and is acknowledged without action.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"


class CheckoutMetadata(BaseModel):
    """Metadata attached at checkout creation and echoed back verbatim."""

    reservation_id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    price: Optional[str] = None

    model_config = {"extra": "ignore"}


class CheckoutCompleted(BaseModel):
    kind: Literal["checkout_completed"] = "checkout_completed"
    event_id: str
    checkout_id: str
    payment_status: Optional[str] = None
    amount_total: Optional[int] = None
    metadata: CheckoutMetadata = Field(default_factory=CheckoutMetadata)


class CheckoutExpired(BaseModel):
    kind: Literal["checkout_expired"] = "checkout_expired"
    event_id: str
    checkout_id: str
    metadata: CheckoutMetadata = Field(default_factory=CheckoutMetadata)


class UnknownEvent(BaseModel):
    kind: Literal["unknown"] = "unknown"
    event_id: str
    event_type: str


PaymentEvent = Union[CheckoutCompleted, CheckoutExpired, UnknownEvent]


def parse_provider_event(data: dict) -> PaymentEvent:
    """Map a verified provider event document onto a PaymentEvent."""
    event_type = data.get("type") or ""
    event_id = data.get("id") or ""
    obj = (data.get("data") or {}).get("object") or {}
    metadata = CheckoutMetadata(**(obj.get("metadata") or {}))

    if event_type == CHECKOUT_COMPLETED:
        return CheckoutCompleted(
            event_id=event_id,
            checkout_id=obj.get("id") or "",
            payment_status=obj.get("payment_status"),
            amount_total=obj.get("amount_total"),
            metadata=metadata,
        )
    if event_type == CHECKOUT_EXPIRED:
        return CheckoutExpired(
            event_id=event_id,
            checkout_id=obj.get("id") or "",
            metadata=metadata,
        )
    return UnknownEvent(event_id=event_id, event_type=event_type)
