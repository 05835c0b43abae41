"""Billing API endpoints: plans, subscription status, Stripe Checkout and Customer Portal."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from promptvault.api.deps import (
    get_notifier,
    get_public_gateway,
    get_subscription_actions,
    get_subscription_state,
)
from promptvault.billing.functions import fetch_subscription_plans
from promptvault.billing.tiers import format_date, get_tier_action_text
from promptvault.errors import AuthenticationRequired, RemoteCallFailed, ValidationFailed
from promptvault.gateway import DataGateway
from promptvault.notifications import Notifier
from promptvault.schemas.billing import (
    ActionResponse,
    ChangeSubscriptionRequest,
    CheckoutRequest,
    NotificationResponse,
    PlanAction,
    PlansListResponse,
    SubscriptionResponse,
    VerifyCheckoutRequest,
)
from promptvault.services.subscription_actions import ActionResult, SubscriptionActions
from promptvault.services.subscription_state import SubscriptionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def raise_for_result(result: ActionResult) -> None:
    """Map a failed action to the matching HTTP status."""
    if result.success:
        return
    if isinstance(result.error, AuthenticationRequired):
        code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(result.error, ValidationFailed):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(result.error, RemoteCallFailed):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    raise HTTPException(status_code=code, detail=result.message)


def _notifications(notifier: Notifier) -> list[NotificationResponse]:
    return [NotificationResponse.from_notification(n) for n in notifier.drain()]


@router.get("/plans", response_model=PlansListResponse)
async def list_plans(
    gateway: DataGateway = Depends(get_public_gateway),
) -> PlansListResponse:
    """List available plans (public, no auth required)."""
    result = await fetch_subscription_plans(gateway)
    if result.error:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to load subscription plans.",
        )
    return PlansListResponse(plans=result.plans, stripe_public_key=result.stripe_public_key)


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    state: SubscriptionState = Depends(get_subscription_state),
    notifier: Notifier = Depends(get_notifier),
) -> SubscriptionResponse:
    """Current subscription, whether it is active, and free-tier usage."""
    subscription = state.user_subscription
    current_tier = subscription.tier if subscription else None
    period_end = subscription.current_period_end if subscription else None
    return SubscriptionResponse(
        tier=current_tier,
        current_plan=state.get_current_plan(),
        is_active=state.is_subscription_active(),
        stripe_customer_id=state.subscription_stripe_customer_id,
        stripe_subscription_id=subscription.stripe_subscription_id if subscription else None,
        current_period_start=subscription.current_period_start if subscription else None,
        current_period_end=period_end,
        current_period_end_display=format_date(period_end),
        cancel_at_period_end=state.cancel_at_period_end,
        usage=state.current_usage,
        plan_actions=[
            PlanAction(
                plan_id=plan.id,
                tier=plan.tier,
                action_text=get_tier_action_text(plan.tier, current_tier),
            )
            for plan in state.plans
            if plan.tier != current_tier
        ],
        notifications=_notifications(notifier),
    )


@router.post("/checkout", response_model=ActionResponse)
async def create_checkout(
    body: CheckoutRequest,
    actions: SubscriptionActions = Depends(get_subscription_actions),
    notifier: Notifier = Depends(get_notifier),
) -> ActionResponse:
    """Create a Stripe Checkout session; the client navigates to ``redirect_url``."""
    result = await actions.subscribe(body.price_id, body.interval)
    raise_for_result(result)
    return ActionResponse(
        success=True, redirect_url=result.redirect_url, notifications=_notifications(notifier)
    )


@router.post("/verify", response_model=ActionResponse)
async def verify_checkout(
    body: VerifyCheckoutRequest,
    actions: SubscriptionActions = Depends(get_subscription_actions),
    notifier: Notifier = Depends(get_notifier),
) -> ActionResponse:
    """Confirm the checkout session the success page was redirected with."""
    result = await actions.verify_checkout(body.session_id)
    raise_for_result(result)
    return ActionResponse(
        success=True, message=result.message, notifications=_notifications(notifier)
    )


@router.post("/change", response_model=ActionResponse)
async def change_subscription(
    body: ChangeSubscriptionRequest,
    actions: SubscriptionActions = Depends(get_subscription_actions),
    notifier: Notifier = Depends(get_notifier),
) -> ActionResponse:
    """Switch the active subscription to another plan or interval."""
    result = await actions.change_subscription(body.plan_id, body.interval)
    raise_for_result(result)
    return ActionResponse(
        success=True,
        message=result.message,
        cancel_at_period_end=actions.state.cancel_at_period_end,
        notifications=_notifications(notifier),
    )


@router.post("/portal", response_model=ActionResponse)
async def create_portal(
    actions: SubscriptionActions = Depends(get_subscription_actions),
    notifier: Notifier = Depends(get_notifier),
) -> ActionResponse:
    """Create a Stripe Customer Portal session for self-service billing."""
    result = await actions.manage_subscription("portal")
    raise_for_result(result)
    return ActionResponse(
        success=True, redirect_url=result.redirect_url, notifications=_notifications(notifier)
    )


async def _set_cancellation(
    action: str, actions: SubscriptionActions, notifier: Notifier
) -> ActionResponse:
    result = await actions.manage_subscription(action)
    raise_for_result(result)
    # Let the background re-read finish so the response carries server truth.
    await actions.invalidator.wait_idle()
    return ActionResponse(
        success=True,
        message=result.message,
        cancel_at_period_end=actions.state.cancel_at_period_end,
        notifications=_notifications(notifier),
    )


@router.post("/cancel", response_model=ActionResponse)
async def cancel_subscription(
    actions: SubscriptionActions = Depends(get_subscription_actions),
    notifier: Notifier = Depends(get_notifier),
) -> ActionResponse:
    """Cancel at the end of the current billing period."""
    return await _set_cancellation("cancel", actions, notifier)


@router.post("/reactivate", response_model=ActionResponse)
async def reactivate_subscription(
    actions: SubscriptionActions = Depends(get_subscription_actions),
    notifier: Notifier = Depends(get_notifier),
) -> ActionResponse:
    """Undo a pending cancellation."""
    return await _set_cancellation("reactivate", actions, notifier)
