"""User subscription rows and live Stripe subscription details."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from promptvault.billing.tiers import SubscriptionTier

BillingInterval = Literal["month", "year"]


class UserSubscription(BaseModel):
    """One row of ``user_subscriptions``, the user's current plan tier."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("current_period_start", "current_period_end")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        """Timestamps without an offset are stored as UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_paid(self) -> bool:
        return self.tier != SubscriptionTier.FREE

    def __repr__(self) -> str:
        return f"<UserSubscription(id={self.id}, user_id={self.user_id}, tier={self.tier.value})>"


class StripePlanRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    interval: BillingInterval


class StripeSubscriptionDetails(BaseModel):
    """Subset of the Stripe subscription object returned by ``get-user-subscription``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    customer: str | None = None
    current_period_start: int | None = None  # Unix seconds
    current_period_end: int | None = None  # Unix seconds
    cancel_at_period_end: bool = False
    plan: StripePlanRef | None = None
