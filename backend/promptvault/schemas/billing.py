"""Pydantic v2 request/response schemas for billing and usage endpoints."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from promptvault.billing.tiers import SubscriptionTier
from promptvault.models.plan import SubscriptionPlan
from promptvault.models.usage import UsageSummary
from promptvault.notifications import Notification

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session."""

    price_id: str
    interval: Literal["month", "year"] = "month"


class ChangeSubscriptionRequest(BaseModel):
    """Request to move an existing subscription to another plan."""

    plan_id: str
    interval: Literal["month", "year"] = "month"


class VerifyCheckoutRequest(BaseModel):
    """Checkout session id Stripe appends to the success URL."""

    session_id: str


# --- Response schemas ---


class NotificationResponse(BaseModel):
    title: str
    description: str
    variant: str

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            title=notification.title,
            description=notification.description,
            variant=notification.variant.value,
        )


class PlansListResponse(BaseModel):
    """Plan catalog plus the publishable Stripe key for the checkout page."""

    plans: list[SubscriptionPlan]
    stripe_public_key: str = ""


class PlanAction(BaseModel):
    """Button label for moving from the user's tier to ``tier``."""

    plan_id: str
    tier: SubscriptionTier
    action_text: str


class SubscriptionResponse(BaseModel):
    """Subscription status, access facts and free-tier usage for the user."""

    tier: SubscriptionTier | None
    current_plan: SubscriptionPlan | None = None
    is_active: bool
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    current_period_end_display: str = "N/A"
    cancel_at_period_end: bool = False
    usage: UsageSummary | None = None  # None = unlimited (paid tier)
    plan_actions: list[PlanAction] = []
    notifications: list[NotificationResponse] = []


class ActionResponse(BaseModel):
    """Outcome of a billing action. ``redirect_url`` is where to send the browser."""

    success: bool
    message: str | None = None
    redirect_url: str | None = None
    cancel_at_period_end: bool | None = None
    notifications: list[NotificationResponse] = []


class UsageResponse(BaseModel):
    """Free-tier quota state. ``prompts_remaining`` is None for unlimited tiers."""

    recorded: bool | None = None
    prompts_remaining: int | None
    limit_reached: bool
    limit: int | None = None
    notifications: list[NotificationResponse] = []
