"""Subscription tiers: total ordering, access checks and display helpers."""

import logging
import math
from datetime import datetime
from enum import Enum
from typing import Literal

logger = logging.getLogger(__name__)


class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


TIER_LEVELS: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PRO: 1,
    SubscriptionTier.PREMIUM: 2,
    SubscriptionTier.ENTERPRISE: 3,
}

TIER_NAMES: dict[SubscriptionTier, str] = {
    SubscriptionTier.FREE: "Free",
    SubscriptionTier.PRO: "Pro",
    SubscriptionTier.PREMIUM: "Premium",
    SubscriptionTier.ENTERPRISE: "Enterprise",
}

ChangeType = Literal["upgrade", "downgrade", "same"]


def get_tier_level(tier: SubscriptionTier | str) -> int:
    """Rank of ``tier`` in ``free < pro < premium < enterprise``."""
    return TIER_LEVELS[SubscriptionTier(tier)]


def has_tier_access(user_tier: SubscriptionTier | str, required_tier: SubscriptionTier | str) -> bool:
    """True iff ``user_tier`` ranks at or above ``required_tier``."""
    return get_tier_level(user_tier) >= get_tier_level(required_tier)


def get_tier_change_type(
    current_tier: SubscriptionTier | str, new_tier: SubscriptionTier | str
) -> ChangeType:
    current, new = get_tier_level(current_tier), get_tier_level(new_tier)
    if new > current:
        return "upgrade"
    if new < current:
        return "downgrade"
    return "same"


def get_tier_name(tier: SubscriptionTier | str | None) -> str:
    """User-friendly tier name, ``"Unknown"`` for anything unrecognised."""
    try:
        return TIER_NAMES[SubscriptionTier(tier)]
    except ValueError:
        return "Unknown"


def get_tier_action_text(
    new_tier: SubscriptionTier | str, current_tier: SubscriptionTier | str | None
) -> str:
    """Label for the button that moves the user to ``new_tier``."""
    name = get_tier_name(new_tier)
    if current_tier is None:
        return f"Subscribe to {name}"

    change_type = get_tier_change_type(current_tier, new_tier)
    if change_type == "upgrade":
        return f"Upgrade to {name}"
    if change_type == "downgrade":
        return f"Downgrade to {name}"
    return f"Change to {name}"


def calculate_yearly_savings(monthly_price: float, yearly_price: float) -> int:
    """Whole-percent discount of yearly billing over twelve monthly payments.

    Never negative: a yearly price at or above ``monthly * 12`` yields 0.
    """
    if monthly_price <= 0 or yearly_price <= 0:
        return 0

    monthly_cost_per_year = monthly_price * 12
    savings = monthly_cost_per_year - yearly_price
    percent = math.floor((savings / monthly_cost_per_year) * 100 + 0.5)
    return max(0, percent)


def format_date(value: datetime | str | None) -> str:
    """Format a timestamp as ``"Mar 5, 2026"``; ``"N/A"`` when missing."""
    if value is None or value == "":
        return "N/A"

    try:
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Could not format date %r", value)
        return "Invalid Date"
    return f"{value.strftime('%b')} {value.day}, {value.year}"
