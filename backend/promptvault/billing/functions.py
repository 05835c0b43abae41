"""Edge-function wrappers for Stripe checkout, portal and subscription changes.

Stripe is never called directly from here; each wrapper invokes the
matching Supabase edge function, which holds the secret key.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from promptvault.gateway import DataGateway, FunctionResult
from promptvault.models.plan import SubscriptionPlan
from promptvault.models.subscription import StripeSubscriptionDetails

logger = logging.getLogger(__name__)


@dataclass
class PlansResult:
    plans: list[SubscriptionPlan] = field(default_factory=list)
    stripe_public_key: str = ""
    error: str | None = None


async def fetch_subscription_plans(gateway: DataGateway) -> PlansResult:
    """Plan catalog (cheapest first) and the Stripe publishable key."""
    result = await gateway.invoke("get-subscription-plans", method="GET")
    if not result.ok:
        logger.error("Error fetching subscription plans: %s", result.error)
        return PlansResult(error=result.error)

    data = result.data or {}
    plans = [SubscriptionPlan.model_validate(row) for row in data.get("plans") or []]
    return PlansResult(plans=plans, stripe_public_key=data.get("stripePublicKey") or "")


async def fetch_stripe_subscription(
    gateway: DataGateway, subscription_id: str
) -> tuple[StripeSubscriptionDetails | None, str | None]:
    """Live Stripe state for ``subscription_id`` as ``(details, error)``."""
    result = await gateway.invoke(
        "get-user-subscription", body={"subscriptionId": subscription_id}
    )
    if not result.ok:
        logger.error("Error fetching Stripe subscription details: %s", result.error)
        return None, result.error

    raw = (result.data or {}).get("subscription")
    if raw is None:
        return None, None
    return StripeSubscriptionDetails.model_validate(raw), None


async def create_checkout_session(
    gateway: DataGateway,
    *,
    price_id: str,
    interval: str,
    email: str,
    success_url: str,
    cancel_url: str,
    customer_id: str | None = None,
    user_id: str | None = None,
) -> FunctionResult:
    """Ask the edge function for a hosted Stripe Checkout session."""
    logger.info("Creating checkout session for %s, price %s (%s)", email, price_id, interval)
    return await gateway.invoke(
        "create-checkout-session",
        body={
            "priceId": price_id,
            "interval": interval,
            "email": email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customerId": customer_id,
            "userId": user_id,
        },
    )


async def create_portal_session(
    gateway: DataGateway, customer_id: str, return_url: str
) -> FunctionResult:
    """Ask the edge function for a Stripe Customer Portal session."""
    logger.info("Creating portal session for customer %s", customer_id)
    return await gateway.invoke(
        "manage-subscription",
        body={"action": "portal", "customerId": customer_id, "return_url": return_url},
    )


async def set_cancel_at_period_end(
    gateway: DataGateway, action: str, subscription_id: str, user_id: str
) -> FunctionResult:
    """``cancel`` schedules cancellation at period end; ``reactivate`` undoes it."""
    logger.info("Requesting %s for subscription %s", action, subscription_id)
    return await gateway.invoke(
        "manage-subscription",
        body={"action": action, "subscriptionId": subscription_id, "userId": user_id},
    )


async def update_subscription(
    gateway: DataGateway,
    *,
    subscription_id: str,
    user_id: str,
    price_id: str,
    interval: str,
) -> FunctionResult:
    """Move an existing subscription to ``price_id``; Stripe handles proration."""
    logger.info("Updating subscription %s to price %s", subscription_id, price_id)
    return await gateway.invoke(
        "update-subscription",
        body={
            "subscriptionId": subscription_id,
            "userId": user_id,
            "priceId": price_id,
            "interval": interval,
        },
    )


async def verify_subscription(
    gateway: DataGateway, session_id: str, user_id: str, customer_id: str | None = None
) -> FunctionResult:
    """Confirm a completed checkout session after the success redirect."""
    return await gateway.invoke(
        "verify-subscription",
        body={"sessionId": session_id, "userId": user_id, "customerId": customer_id},
    )


def result_url(result: FunctionResult) -> str | None:
    data: Any = result.data
    if isinstance(data, dict):
        url = data.get("url")
        return url if isinstance(url, str) and url else None
    return None
