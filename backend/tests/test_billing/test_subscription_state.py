"""Tests for SubscriptionState: loading, free-row creation and access facts."""

from datetime import datetime, timedelta, timezone

import pytest
from fakes import FakeGateway, future, plans_result, subscription_row

from promptvault.billing.tiers import SubscriptionTier
from promptvault.gateway import FunctionResult
from promptvault.models.subscription import UserSubscription
from promptvault.models.user import AuthUser
from promptvault.realtime import TableInvalidator
from promptvault.services.subscription_state import SubscriptionState


def _make_state(gateway, user, notifier, invalidator=None, **kwargs) -> SubscriptionState:
    return SubscriptionState(
        gateway, user, notifier=notifier, invalidator=invalidator or TableInvalidator(), **kwargs
    )


def _with_subscription(state: SubscriptionState, tier: str, period_end: datetime | None):
    state.user_subscription = UserSubscription(
        id="sub-1", user_id="user-123", tier=tier, current_period_end=period_end
    )
    state.is_subscription_loading = False
    return state


class TestLoad:
    """Test initial loading of plans and the subscription row."""

    async def test_loads_plans_and_public_key(self, gateway: FakeGateway, test_user, notifier):
        gateway.function_results["get-subscription-plans"] = plans_result()
        gateway.tables["user_subscriptions"].append(subscription_row(test_user.id))

        state = await _make_state(gateway, test_user, notifier).load()

        assert [p.id for p in state.plans] == ["plan-free", "plan-pro", "plan-premium"]
        assert state.stripe_public_key == "pk_test_123"
        assert state.is_loading is False
        assert state.is_subscription_loading is False

    async def test_creates_free_row_when_missing(self, gateway: FakeGateway, test_user, notifier):
        gateway.function_results["get-subscription-plans"] = plans_result()

        state = await _make_state(gateway, test_user, notifier).load()

        inserts = gateway.calls_to("insert", "user_subscriptions")
        assert len(inserts) == 1
        assert inserts[0][2] == {"user_id": test_user.id, "tier": "free"}
        assert state.user_subscription is not None
        assert state.user_subscription.tier == SubscriptionTier.FREE

    async def test_free_tier_loads_usage(self, gateway: FakeGateway, test_user, notifier):
        now = datetime.now(timezone.utc)
        gateway.tables["user_subscriptions"].append(subscription_row(test_user.id))
        gateway.tables["user_prompt_usage"].append(
            {"user_id": test_user.id, "month": now.month, "year": now.year, "count": 12}
        )

        state = await _make_state(gateway, test_user, notifier).load()

        assert state.current_usage is not None
        assert state.current_usage.count == 12
        assert state.current_usage.limit == 50
        assert state.current_usage.remaining == 38

    async def test_paid_tier_reads_stripe_details(self, gateway: FakeGateway, test_user, notifier):
        gateway.tables["user_subscriptions"].append(
            subscription_row(
                test_user.id,
                "pro",
                stripe_customer_id="cus_1",
                stripe_subscription_id="sub_stripe_1",
                current_period_end=future(),
            )
        )
        gateway.function_results["get-user-subscription"] = FunctionResult(
            data={
                "subscription": {
                    "id": "sub_stripe_1",
                    "customer": "cus_1",
                    "current_period_start": 1_700_000_000,
                    "current_period_end": 1_702_592_000,
                    "cancel_at_period_end": True,
                }
            }
        )

        state = await _make_state(gateway, test_user, notifier).load()

        assert state.cancel_at_period_end is True
        assert state.stripe_subscription is not None
        assert state.subscription_stripe_customer_id == "cus_1"
        assert state.current_usage is None
        body = gateway.calls_to("invoke", "get-user-subscription")[0][3]
        assert body == {"subscriptionId": "sub_stripe_1"}

    async def test_plan_failure_keeps_previous_plans(self, gateway: FakeGateway, test_user, notifier):
        gateway.function_results["get-subscription-plans"] = plans_result()
        state = _make_state(gateway, test_user, notifier)
        await state.load_subscription_plans()

        gateway.function_results["get-subscription-plans"] = FunctionResult(error="boom")
        await state.load_subscription_plans()

        assert len(state.plans) == 3
        assert state.is_loading is False

    async def test_query_error_does_not_create_row(self, gateway: FakeGateway, test_user, notifier):
        gateway.query_errors["user_subscriptions"] = RuntimeError("network down")

        state = await _make_state(gateway, test_user, notifier).load()

        assert gateway.calls_to("insert") == []
        assert state.user_subscription is None
        assert notifier.items[-1].description == "network down"

    async def test_signed_out(self, gateway: FakeGateway, notifier):
        state = await _make_state(gateway, None, notifier).load()

        assert state.user_subscription is None
        assert state.is_subscription_loading is False
        assert gateway.calls_to("query") == []


class TestDerivedFacts:
    """Test get_current_plan, is_subscription_active and has_access."""

    async def test_current_plan_matches_tier(self, gateway: FakeGateway, test_user, notifier):
        gateway.function_results["get-subscription-plans"] = plans_result()
        gateway.tables["user_subscriptions"].append(
            subscription_row(test_user.id, "pro", current_period_end=future())
        )
        state = await _make_state(gateway, test_user, notifier).load()

        assert state.get_current_plan().id == "plan-pro"

    def test_current_plan_none_before_catalog(self, gateway, test_user, notifier):
        state = _with_subscription(_make_state(gateway, test_user, notifier), "pro", None)
        assert state.get_current_plan() is None

    def test_free_is_always_active(self, gateway, test_user, notifier):
        state = _with_subscription(_make_state(gateway, test_user, notifier), "free", None)
        assert state.is_subscription_active() is True

    def test_paid_with_past_period_end_is_inactive(self, gateway, test_user, notifier):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        state = _with_subscription(_make_state(gateway, test_user, notifier), "pro", past)
        assert state.is_subscription_active() is False

    def test_paid_with_future_period_end_is_active(self, gateway, test_user, notifier):
        soon = datetime.now(timezone.utc) + timedelta(hours=1)
        state = _with_subscription(_make_state(gateway, test_user, notifier), "pro", soon)
        assert state.is_subscription_active() is True

    def test_paid_without_period_end_is_inactive(self, gateway, test_user, notifier):
        state = _with_subscription(_make_state(gateway, test_user, notifier), "pro", None)
        assert state.is_subscription_active() is False

    def test_active_is_evaluated_at_call_time(self, gateway, test_user, notifier):
        end = datetime(2026, 1, 1, tzinfo=timezone.utc)
        state = _with_subscription(_make_state(gateway, test_user, notifier), "pro", end)
        assert state.is_subscription_active(now=end - timedelta(seconds=1)) is True
        assert state.is_subscription_active(now=end) is False

    @pytest.mark.parametrize(
        ("tier", "required", "expected"),
        [
            ("pro", "premium", False),
            ("pro", "pro", True),
            ("enterprise", "free", True),
            ("premium", "enterprise", False),
            ("free", "free", True),
        ],
    )
    def test_has_access(self, gateway, test_user, notifier, tier, required, expected):
        state = _with_subscription(
            _make_state(gateway, test_user, notifier),
            tier,
            datetime.now(timezone.utc) + timedelta(days=1),
        )
        assert state.has_access(required) is expected

    def test_has_access_fails_closed_while_loading(self, gateway, test_user, notifier):
        state = _make_state(gateway, test_user, notifier)
        assert state.is_subscription_loading is True
        assert state.has_access(SubscriptionTier.FREE) is False

    def test_expired_paid_tier_only_reaches_free(self, gateway, test_user, notifier):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        state = _with_subscription(_make_state(gateway, test_user, notifier), "premium", past)
        assert state.has_access("free") is True
        assert state.has_access("pro") is False


class TestLiveUpdates:
    """Test the live subscription row and auth changes."""

    async def test_change_event_refetches(self, gateway: FakeGateway, test_user, notifier):
        gateway.tables["user_subscriptions"].append(subscription_row(test_user.id))
        state = _make_state(gateway, test_user, notifier)

        async with state:
            assert state.user_subscription.tier == SubscriptionTier.FREE
            gateway.tables["user_subscriptions"][0]["tier"] = "enterprise"
            gateway.tables["user_subscriptions"][0]["current_period_end"] = future()
            gateway.emit("user_subscriptions")
            await state.wait_idle()

            assert state.user_subscription.tier == SubscriptionTier.ENTERPRISE

        assert gateway.channels == {}

    async def test_invalidation_refetches(self, gateway: FakeGateway, test_user, notifier):
        invalidator = TableInvalidator()
        gateway.tables["user_subscriptions"].append(subscription_row(test_user.id))
        state = await _make_state(gateway, test_user, notifier, invalidator).load()
        before = len(gateway.calls_to("query", "user_subscriptions"))

        ran = await invalidator.invalidate("user_subscriptions")

        assert ran == 1
        assert len(gateway.calls_to("query", "user_subscriptions")) == before + 1
        await state.close()

    async def test_auth_change_reloads_for_new_user(self, gateway: FakeGateway, test_user, notifier):
        other = AuthUser(id="user-456", email="other@example.com")
        gateway.tables["user_subscriptions"].extend(
            [
                subscription_row(test_user.id),
                subscription_row(other.id, "premium", current_period_end=future()),
            ]
        )
        state = await _make_state(gateway, test_user, notifier).load()

        await state.on_auth_change(other)

        assert state.user is other
        assert state.user_subscription.user_id == other.id
        assert state.current_usage is None

    async def test_sign_out_clears_state(self, gateway: FakeGateway, test_user, notifier):
        gateway.tables["user_subscriptions"].append(subscription_row(test_user.id))
        state = await _make_state(gateway, test_user, notifier).start()

        await state.on_auth_change(None)

        assert state.user_subscription is None
        assert state.has_access("free") is False
        assert gateway.channels == {}
        await state.close()

    async def test_restart_after_close(self, gateway: FakeGateway, test_user, notifier):
        invalidator = TableInvalidator()
        gateway.tables["user_subscriptions"].append(subscription_row(test_user.id))
        state = _make_state(gateway, test_user, notifier, invalidator)

        await state.start()
        await state.close()
        assert gateway.channels == {}
        assert invalidator.dependents("subscription_plans") == []

        await state.start()

        assert len(gateway.channels) == 1
        assert len(invalidator.dependents("subscription_plans")) == 1
        assert len(invalidator.dependents("user_subscriptions")) == 1

        gateway.tables["user_subscriptions"][0]["tier"] = "enterprise"
        gateway.tables["user_subscriptions"][0]["current_period_end"] = future()
        gateway.emit("user_subscriptions")
        await state.wait_idle()
        assert state.user_subscription.tier == SubscriptionTier.ENTERPRISE
        await state.close()
