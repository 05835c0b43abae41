"""Pydantic row models for the remote Supabase tables.

Rows are validated once at the gateway boundary; everything above it works
with these types rather than raw dictionaries.
"""

from promptvault.models.api_setting import ApiSetting
from promptvault.models.events import PaymentFailure, SubscriptionEvent
from promptvault.models.plan import Feature, Flag, NamedFlag, SubscriptionPlan
from promptvault.models.subscription import (
    BillingInterval,
    StripeSubscriptionDetails,
    UserSubscription,
)
from promptvault.models.usage import PromptUsage, UsageSummary
from promptvault.models.user import AuthUser

__all__ = [
    "ApiSetting",
    "AuthUser",
    "BillingInterval",
    "Feature",
    "Flag",
    "NamedFlag",
    "PaymentFailure",
    "PromptUsage",
    "StripeSubscriptionDetails",
    "SubscriptionEvent",
    "SubscriptionPlan",
    "UsageSummary",
    "UserSubscription",
]
