"""Tests for plan catalog rows and feature normalisation."""

import json

from fakes import PLAN_ROWS

from promptvault.billing.tiers import SubscriptionTier
from promptvault.models.plan import (
    DEFAULT_PLAN_DESCRIPTION,
    Flag,
    NamedFlag,
    SubscriptionPlan,
    humanize_feature_key,
    normalize_feature,
)


class TestNormalizeFeature:
    """Raw JSON feature values become Flag / NamedFlag once."""

    def test_bool(self):
        assert normalize_feature("x", True) == Flag(enabled=True)
        assert normalize_feature("x", False) == Flag(enabled=False)

    def test_object_with_description(self):
        feature = normalize_feature("support", {"description": "Email support", "value": False})
        assert feature == NamedFlag(description="Email support", enabled=False)

    def test_object_without_description_uses_key(self):
        feature = normalize_feature("priority_support", {"value": True})
        assert feature == NamedFlag(description="Priority Support", enabled=True)

    def test_string_describes_itself(self):
        feature = normalize_feature("limit", "50 prompts per month")
        assert isinstance(feature, NamedFlag)
        assert feature.description == "50 prompts per month"
        assert feature.enabled is True

    def test_none_is_disabled(self):
        assert normalize_feature("x", None) == Flag(enabled=False)

    def test_humanize(self):
        assert humanize_feature_key("unlimited_prompts") == "Unlimited Prompts"


class TestSubscriptionPlan:
    """Test SubscriptionPlan parsing and derived values."""

    def test_description_split_from_features(self):
        plan = SubscriptionPlan.model_validate(PLAN_ROWS[1])
        assert plan.tier == SubscriptionTier.PRO
        assert plan.description == "For regular users"
        assert "description" not in plan.features
        assert plan.features["unlimited_prompts"] == Flag(enabled=True)

    def test_default_description(self):
        plan = SubscriptionPlan.model_validate(PLAN_ROWS[2])
        assert plan.description == DEFAULT_PLAN_DESCRIPTION
        assert plan.features["priority_support"] == NamedFlag(
            description="Priority support", enabled=True
        )

    def test_features_as_json_string(self):
        row = {**PLAN_ROWS[1], "features": json.dumps({"description": "JSON", "api": True})}
        plan = SubscriptionPlan.model_validate(row)
        assert plan.description == "JSON"
        assert plan.features == {"api": Flag(enabled=True)}

    def test_round_trips_through_dump(self):
        plan = SubscriptionPlan.model_validate(PLAN_ROWS[2])
        again = SubscriptionPlan.model_validate(plan.model_dump())
        assert again == plan

    def test_price_id_never_falls_back(self):
        plan = SubscriptionPlan.model_validate(PLAN_ROWS[2])
        assert plan.price_id_for("month") == "price_premium_month"
        assert plan.price_id_for("year") is None

    def test_yearly_savings(self):
        assert SubscriptionPlan.model_validate(PLAN_ROWS[1]).yearly_savings == 17

    def test_yearly_price_not_cheaper_gives_zero_discount(self):
        row = {**PLAN_ROWS[1], "price_monthly": 10, "price_yearly": 130}
        assert SubscriptionPlan.model_validate(row).yearly_savings == 0
