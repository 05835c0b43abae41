"""Subscription domain state for one signed-in user.

Holds the plan catalog, the user's ``user_subscriptions`` row, the live
Stripe details for paid tiers, and the free-tier usage summary, and derives
the access facts the UI gates on.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from promptvault.billing.functions import fetch_stripe_subscription, fetch_subscription_plans
from promptvault.billing.tiers import SubscriptionTier, has_tier_access
from promptvault.config import settings
from promptvault.gateway import DataGateway, QueryFilter
from promptvault.models.plan import SubscriptionPlan
from promptvault.models.subscription import StripeSubscriptionDetails, UserSubscription
from promptvault.models.usage import PromptUsage, UsageSummary
from promptvault.models.user import AuthUser
from promptvault.notifications import Notifier
from promptvault.realtime import ChannelRegistry, TableInvalidator
from promptvault.services.live_query import LiveQuery, QueryOptions

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_subscriptions(rows: list[dict]) -> list[UserSubscription]:
    return [UserSubscription.model_validate(row) for row in rows if row]


class SubscriptionState:
    """Raw subscription records plus the derived predicates of the access layer.

    ``load()`` reads everything once; ``start()`` additionally keeps the
    subscription row live through the change feed until ``close()``.
    """

    def __init__(
        self,
        gateway: DataGateway,
        user: AuthUser | None,
        *,
        notifier: Notifier,
        invalidator: TableInvalidator | None = None,
        registry: ChannelRegistry | None = None,
        free_tier_prompt_limit: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.notifier = notifier
        self.invalidator = invalidator or TableInvalidator()
        self.registry = registry or ChannelRegistry(gateway)
        self.free_tier_prompt_limit = (
            free_tier_prompt_limit
            if free_tier_prompt_limit is not None
            else settings.free_tier_prompt_limit
        )
        self.clock = clock

        self.user = user
        self.plans: list[SubscriptionPlan] = []
        self.stripe_public_key = ""
        self.is_loading = True
        self.is_subscribing = False
        self.is_managing_subscription = False
        self._reset_user_state()

        self._unregister_plans = self.invalidator.register(
            "subscription_plans", self.load_subscription_plans
        )
        self._query = self._build_query()
        self._started = False
        self._closed = False

    def _reset_user_state(self) -> None:
        self.user_subscription: UserSubscription | None = None
        self.stripe_subscription: StripeSubscriptionDetails | None = None
        self.cancel_at_period_end = False
        self.subscription_stripe_customer_id: str | None = None
        self.current_usage: UsageSummary | None = None
        self.is_subscription_loading = self.user is not None

    def _build_query(self) -> LiveQuery[UserSubscription] | None:
        if self.user is None:
            return None
        return LiveQuery(
            self.gateway,
            QueryOptions(
                table="user_subscriptions",
                filter=QueryFilter("user_id", self.user.id),
                error_title="Failed to load your subscription",
                format_result=_as_subscriptions,
            ),
            notifier=self.notifier,
            registry=self.registry,
            invalidator=self.invalidator,
            on_result=self._apply_subscription,
        )

    # --- Loading ---

    async def load_subscription_plans(self) -> list[SubscriptionPlan]:
        self.is_loading = True
        try:
            result = await fetch_subscription_plans(self.gateway)
            if result.error:
                logger.error("Error loading subscription plans: %s", result.error)
                return self.plans

            self.plans = result.plans
            if result.stripe_public_key:
                self.stripe_public_key = result.stripe_public_key
            return self.plans
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error loading subscription plans")
            return self.plans
        finally:
            self.is_loading = False

    async def load_user_subscription(self) -> UserSubscription | None:
        """Re-read the subscription row, creating a free one for new users."""
        if self._query is None:
            self.user_subscription = None
            self.is_subscription_loading = False
            return None

        self.is_subscription_loading = True
        try:
            rows = await self._query.refetch()
            if self._query.error is None and not rows:
                await self.create_free_subscription()
            return self.user_subscription
        finally:
            self.is_subscription_loading = False

    async def _apply_subscription(self, rows: list[UserSubscription]) -> None:
        if not rows:
            self.user_subscription = None
            return

        subscription = rows[0]
        self.user_subscription = subscription
        self.subscription_stripe_customer_id = subscription.stripe_customer_id

        if subscription.is_paid and subscription.stripe_subscription_id:
            details, error = await fetch_stripe_subscription(
                self.gateway, subscription.stripe_subscription_id
            )
            if error:
                logger.error("Error fetching Stripe subscription details: %s", error)
            elif details is not None:
                self.stripe_subscription = details
                self.cancel_at_period_end = details.cancel_at_period_end
        elif not subscription.is_paid:
            self.stripe_subscription = None
            self.cancel_at_period_end = False

        if subscription.tier == SubscriptionTier.FREE:
            await self.load_free_usage()
        else:
            self.current_usage = None

    async def load_free_usage(self) -> UsageSummary | None:
        if self.user is None:
            return None

        month, year = PromptUsage.key_for(self.clock())
        try:
            row = await self.gateway.query(
                "user_prompt_usage",
                select="count",
                filters=(
                    QueryFilter("user_id", self.user.id),
                    QueryFilter("month", month),
                    QueryFilter("year", year),
                ),
                maybe_single=True,
            )
        except Exception as e:  # noqa: BLE001
            logger.error("Error fetching prompt usage for %s: %s", self.user.id, e)
            return self.current_usage

        count = (row or {}).get("count") or 0
        self.current_usage = UsageSummary.from_count(count, self.free_tier_prompt_limit)
        return self.current_usage

    async def create_free_subscription(self) -> UserSubscription | None:
        if self.user is None or self._query is None:
            return None

        logger.info("Creating free-tier subscription for user %s", self.user.id)
        try:
            await self.gateway.insert(
                "user_subscriptions",
                {"user_id": self.user.id, "tier": SubscriptionTier.FREE.value},
            )
        except Exception as e:  # noqa: BLE001
            logger.error("Error creating user subscription record: %s", e)
            return None

        await self._query.refetch()
        return self.user_subscription

    async def load(self) -> "SubscriptionState":
        if self._closed:
            await self._reopen()
        await self.load_subscription_plans()
        await self.load_user_subscription()
        return self

    # --- Live lifecycle ---

    async def start(self) -> "SubscriptionState":
        """Load everything and keep the subscription row live."""
        if self._started:
            return self
        if self._closed:
            await self._reopen()
        self._started = True
        await self.load_subscription_plans()
        if self._query is None:
            self.is_subscription_loading = False
            return self

        self.is_subscription_loading = True
        try:
            await self._query.start()
            if self._query.error is None and not self._query.data:
                await self.create_free_subscription()
        finally:
            self.is_subscription_loading = False
        return self

    async def _reopen(self) -> None:
        # A closed LiveQuery never restarts, so build a fresh one.
        if self._query is not None:
            await self._query.close()
        self._query = self._build_query()
        self._unregister_plans = self.invalidator.register(
            "subscription_plans", self.load_subscription_plans
        )
        self._closed = False

    async def close(self) -> None:
        if self._query is not None:
            await self._query.close()
        self._unregister_plans()
        self._started = False
        self._closed = True

    async def on_auth_change(self, user: AuthUser | None) -> None:
        """Switch to ``user`` (or signed-out) and reload their state."""
        if user == self.user:
            return
        was_started = self._started
        if self._query is not None:
            await self._query.close()

        self.user = user
        self._reset_user_state()
        self._query = self._build_query()
        self._started = False

        if was_started:
            self._unregister_plans()
            self._unregister_plans = self.invalidator.register(
                "subscription_plans", self.load_subscription_plans
            )
            await self.start()
        else:
            await self.load_user_subscription()

    async def wait_idle(self) -> None:
        """Wait for refetches triggered by change events or background invalidation."""
        if self._query is not None:
            await self._query.wait_idle()
        await self.invalidator.wait_idle()

    async def __aenter__(self) -> "SubscriptionState":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Derived facts ---

    def get_current_plan(self) -> SubscriptionPlan | None:
        """Catalog plan matching the user's tier, or ``None`` before both have loaded."""
        if self.user_subscription is None or not self.plans:
            return None
        tier = self.user_subscription.tier
        return next((plan for plan in self.plans if plan.tier == tier), None)

    def is_subscription_active(self, now: datetime | None = None) -> bool:
        """Point-in-time check; re-evaluate on every use.

        Free is always active. A paid tier is active only while
        ``current_period_end`` lies strictly in the future, even if the
        stored tier has not been reconciled by the billing webhook yet.
        """
        subscription = self.user_subscription
        if subscription is None:
            return False
        if subscription.tier == SubscriptionTier.FREE:
            return True
        if subscription.current_period_end is None:
            return False
        return subscription.current_period_end > (now or self.clock())

    def effective_tier(self, now: datetime | None = None) -> SubscriptionTier | None:
        if self.user_subscription is None:
            return None
        if not self.is_subscription_active(now):
            return SubscriptionTier.FREE
        return self.user_subscription.tier

    def has_access(self, required_tier: SubscriptionTier | str, now: datetime | None = None) -> bool:
        """Fails closed while the subscription is absent or still loading."""
        tier = self.effective_tier(now)
        if tier is None:
            return False
        return has_tier_access(tier, required_tier)

    def find_plan(self, plan_id: str) -> SubscriptionPlan | None:
        return next((plan for plan in self.plans if plan.id == plan_id), None)
