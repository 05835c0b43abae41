"""Append-only audit rows: subscription events and payment failures."""

from typing import Any

from pydantic import BaseModel, Field


class SubscriptionEvent(BaseModel):
    """Insert payload for ``subscription_events``."""

    user_id: str
    event_type: str
    old_tier: str | None = None
    new_tier: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentFailure(BaseModel):
    """Insert payload for ``payment_failures``."""

    user_id: str
    subscription_id: str | None = None
    payment_intent_id: str | None = None
    amount: float | None = None
    currency: str | None = None
    reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
