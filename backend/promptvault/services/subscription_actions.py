"""Subscription actions: checkout and its verification, plan change, cancel and portal.

Each action returns an :class:`ActionResult` and never raises. Redirects
(Stripe Checkout, Customer Portal) are returned as ``redirect_url`` for the
caller to navigate to.
"""

import logging
from dataclasses import dataclass
from typing import Literal, get_args

from promptvault.billing.functions import (
    create_checkout_session,
    create_portal_session,
    result_url,
    set_cancel_at_period_end,
    update_subscription,
    verify_subscription,
)
from promptvault.billing.tiers import get_tier_change_type, get_tier_name
from promptvault.config import Settings, settings
from promptvault.errors import (
    AuthenticationRequired,
    ErrorHandler,
    PromptVaultError,
    RemoteCallFailed,
    ValidationFailed,
)
from promptvault.gateway import QueryFilter
from promptvault.models.plan import SubscriptionPlan
from promptvault.models.subscription import BillingInterval
from promptvault.services.audit_service import AuditService
from promptvault.services.subscription_state import SubscriptionState

logger = logging.getLogger(__name__)

ManageAction = Literal["portal", "cancel", "reactivate"]

BILLING_INTERVALS: tuple[str, ...] = get_args(BillingInterval)
MANAGE_ACTIONS: tuple[str, ...] = get_args(ManageAction)

UNEXPECTED_ERROR = "An unexpected error occurred. Please try again later."
VERIFY_FAILED = "Failed to verify subscription. Please contact support."


@dataclass
class ActionResult:
    success: bool
    message: str | None = None
    redirect_url: str | None = None
    error: PromptVaultError | None = None


class SubscriptionActions:
    """Write-side operations for the user held by a :class:`SubscriptionState`.

    In-flight flags live on the state object (``is_subscribing``,
    ``is_managing_subscription``) so readers of the state see them. The
    plan-change flags live here and are reset at the start of every call.
    """

    def __init__(
        self,
        state: SubscriptionState,
        *,
        audit: AuditService | None = None,
        config: Settings | None = None,
    ) -> None:
        self.state = state
        self.gateway = state.gateway
        self.notifier = state.notifier
        self.invalidator = state.invalidator
        self.audit = audit or AuditService(state.gateway)
        self.config = config or settings
        self._errors = ErrorHandler(self.notifier, error_title="Error")

        self.is_changing_subscription = False
        self.change_subscription_error = ""
        self.change_subscription_success = ""

    def _fail(self, error: BaseException | str, message: str | None = None) -> ActionResult:
        wrapped = self._errors.handle(error, message=message)
        return ActionResult(success=False, message=message or wrapped.message, error=wrapped)

    # --- Checkout ---

    async def subscribe(self, price_id: str, interval: str) -> ActionResult:
        """Start a Stripe Checkout session; on success ``redirect_url`` is the checkout page."""
        user = self.state.user
        if user is None or not user.email:
            return self._fail(
                AuthenticationRequired("You must be logged in to purchase a subscription.")
            )
        if interval not in BILLING_INTERVALS:
            return self._fail(ValidationFailed(f"Invalid billing interval: {interval}"))
        if not price_id:
            return self._fail(ValidationFailed("Please select a plan to subscribe to."))

        self.state.is_subscribing = True
        try:
            await self.audit.checkout_initiated(user.id, price_id, interval)

            result = await create_checkout_session(
                self.gateway,
                price_id=price_id,
                interval=interval,
                email=user.email,
                success_url=self.config.checkout_success_url,
                cancel_url=self.config.checkout_cancel_url,
                customer_id=self.state.subscription_stripe_customer_id,
                user_id=user.id,
            )
            url = result_url(result)
            if not result.ok or url is None:
                message = result.error or "Failed to create subscription checkout."
                await self.audit.checkout_abandoned(user.id, message)
                return self._fail(RemoteCallFailed(message, operation="create-checkout-session"))

            data = result.data or {}
            await self.audit.checkout_session_created(
                user.id, data.get("sessionId"), data.get("customerId")
            )
            logger.info("Checkout session created for user %s", user.id)
            return ActionResult(success=True, redirect_url=url)
        except Exception as e:  # noqa: BLE001
            logger.exception("Error in subscribe for user %s", user.id)
            return self._fail(e, message=UNEXPECTED_ERROR)
        finally:
            self.state.is_subscribing = False

    async def verify_checkout(self, session_id: str) -> ActionResult:
        """Confirm a completed checkout after Stripe redirects back with ``session_id``."""
        user = self.state.user
        if user is None:
            return self._fail(
                AuthenticationRequired("You must be logged in to verify your subscription.")
            )
        if not session_id:
            return self._fail(ValidationFailed("No subscription information found."))

        old_tier = self.state.user_subscription.tier if self.state.user_subscription else None
        try:
            result = await verify_subscription(
                self.gateway, session_id, user.id, self.state.subscription_stripe_customer_id
            )
            data = result.data if isinstance(result.data, dict) else {}
            subscription_id = (data.get("subscription") or {}).get("id")
            if not result.ok or data.get("success") is False:
                reason = data.get("message") or result.error or VERIFY_FAILED
                logger.warning("Checkout %s not verified for %s: %s", session_id, user.id, reason)
                await self.audit.track_payment_failure(
                    user.id,
                    subscription_id=subscription_id,
                    reason=reason,
                    metadata={"session_id": session_id},
                )
                return self._fail(
                    RemoteCallFailed(reason, operation="verify-subscription"), message=VERIFY_FAILED
                )

            new_tier = data.get("tier")
            await self.audit.checkout_completed(user.id, session_id, new_tier, subscription_id)
            old_value = old_tier.value if old_tier else "free"
            if new_tier and new_tier != old_value:
                await self.audit.track_subscription_change(
                    user.id, old_value, new_tier, "checkout_completed"
                )

            # verify-subscription has written the paid row; re-read it.
            await self.invalidator.invalidate("user_subscriptions")
            message = f"Your {get_tier_name(new_tier)} subscription is now active."
            self.notifier.notify("Success!", message)
            logger.info("Checkout %s verified for user %s (%s)", session_id, user.id, new_tier)
            return ActionResult(success=True, message=message)
        except Exception as e:  # noqa: BLE001
            logger.exception("Error verifying checkout %s", session_id)
            return self._fail(e, message=VERIFY_FAILED)

    # --- Plan change ---

    async def _get_plan_by_id(self, plan_id: str) -> SubscriptionPlan | None:
        plan = self.state.find_plan(plan_id)
        if plan is not None:
            return plan
        try:
            row = await self.gateway.query(
                "subscription_plans", filters=(QueryFilter("id", plan_id),), single=True
            )
        except Exception as e:  # noqa: BLE001
            logger.error("Error fetching plan details for %s: %s", plan_id, e)
            return None
        return SubscriptionPlan.model_validate(row) if row else None

    def _change_failed(self, message: str) -> ActionResult:
        self.change_subscription_error = message
        return ActionResult(success=False, message=message, error=ValidationFailed(message))

    async def change_subscription(self, plan_id: str, interval: str) -> ActionResult:
        """Move the active Stripe subscription to ``plan_id`` at ``interval``."""
        self.is_changing_subscription = False
        self.change_subscription_error = ""
        self.change_subscription_success = ""

        user = self.state.user
        subscription = self.state.user_subscription
        if user is None or subscription is None or not subscription.stripe_subscription_id:
            return self._change_failed("You must have an active subscription to change plans.")
        if interval not in BILLING_INTERVALS:
            return self._change_failed(f"Invalid billing interval: {interval}")

        self.is_changing_subscription = True
        try:
            plan = await self._get_plan_by_id(plan_id)
            if plan is None:
                return self._change_failed("Selected plan not found.")

            price_id = plan.price_id_for(interval)
            if not price_id:
                return self._change_failed(f"No {interval}ly price available for selected plan.")

            result = await update_subscription(
                self.gateway,
                subscription_id=subscription.stripe_subscription_id,
                user_id=user.id,
                price_id=price_id,
                interval=interval,
            )
            if not result.ok:
                message = result.error or "Failed to update subscription. Please try again."
                logger.error("Error updating subscription: %s", message)
                self.change_subscription_error = message
                return self._fail(RemoteCallFailed(message, operation="update-subscription"))

            self.change_subscription_success = (
                f"Your subscription has been updated to the {plan.name} plan."
            )
            self.notifier.notify(
                "Subscription Updated",
                f"Your subscription has been changed to the {plan.name} plan.",
            )
            await self.audit.subscription_updated(
                user.id,
                subscription.stripe_subscription_id,
                subscription.tier.value,
                plan.tier.value,
                get_tier_change_type(subscription.tier, plan.tier),
            )

            # Proration and period fields are computed server-side; re-read them.
            await self.invalidator.invalidate("user_subscriptions")
            return ActionResult(success=True, message=self.change_subscription_success)
        except Exception as e:  # noqa: BLE001
            logger.exception("Error in change_subscription")
            self.change_subscription_error = "An unexpected error occurred. Please try again."
            return self._fail(e, message=self.change_subscription_error)
        finally:
            self.is_changing_subscription = False

    # --- Cancel / reactivate / portal ---

    async def manage_subscription(self, action: str) -> ActionResult:
        user = self.state.user
        if user is None:
            return self._fail(
                AuthenticationRequired(
                    "You must be logged in and have a subscription to manage it."
                )
            )
        if action not in MANAGE_ACTIONS:
            return self._fail(ValidationFailed(f"Invalid action: {action}"))

        self.state.is_managing_subscription = True
        try:
            if action == "portal":
                return await self._open_portal()
            return await self._set_cancellation(action, user.id)
        except Exception as e:  # noqa: BLE001
            logger.exception("Error in manage_subscription (%s)", action)
            return self._fail(e, message=UNEXPECTED_ERROR)
        finally:
            self.state.is_managing_subscription = False

    async def _open_portal(self) -> ActionResult:
        customer_id = self.state.subscription_stripe_customer_id
        if not customer_id:
            return self._fail(
                ValidationFailed("No billing account found. Subscribe to a plan first.")
            )

        result = await create_portal_session(
            self.gateway, customer_id, self.config.subscription_page_url
        )
        url = result_url(result)
        if not result.ok or url is None:
            message = result.error or "Failed to open subscription management."
            return self._fail(RemoteCallFailed(message, operation="manage-subscription"))
        return ActionResult(success=True, redirect_url=url)

    async def _set_cancellation(self, action: str, user_id: str) -> ActionResult:
        subscription = self.state.user_subscription
        if subscription is None or not subscription.stripe_subscription_id:
            return self._fail(ValidationFailed("No active subscription found."))

        result = await set_cancel_at_period_end(
            self.gateway, action, subscription.stripe_subscription_id, user_id
        )
        if not result.ok:
            message = result.error or f"Failed to {action} subscription."
            return self._fail(RemoteCallFailed(message, operation="manage-subscription"))

        cancel = action == "cancel"
        self.state.cancel_at_period_end = cancel

        server_message = (result.data or {}).get("message") if isinstance(result.data, dict) else None
        if cancel:
            title = "Subscription Cancelled"
            message = server_message or (
                "Your subscription will end at the end of the current billing period."
            )
            await self.audit.subscription_canceled(
                user_id, subscription.stripe_subscription_id, subscription.tier.value
            )
        else:
            title = "Subscription Reactivated"
            message = server_message or (
                "Your subscription has been reactivated and will renew automatically."
            )
            await self.audit.subscription_reactivated(
                user_id, subscription.stripe_subscription_id, subscription.tier.value
            )
        self.notifier.notify(title, message)

        self.invalidator.schedule("user_subscriptions")
        return ActionResult(success=True, message=message)
