"""Subscription plan catalog entries and their feature map.

Stored features are loosely typed JSON: a plan-level ``description``
string plus per-feature values that may be booleans, strings, numbers or
``{"description": ..., "value": ...}`` objects. They are normalised once,
here, into the :data:`Feature` tagged union.
"""

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from promptvault.billing.tiers import SubscriptionTier, calculate_yearly_savings

DEFAULT_PLAN_DESCRIPTION = "An amazing subscription plan"


class Flag(BaseModel):
    """A feature that is simply on or off."""

    kind: Literal["flag"] = "flag"
    enabled: bool


class NamedFlag(BaseModel):
    """A feature with its own display text."""

    kind: Literal["named"] = "named"
    description: str
    enabled: bool


Feature = Annotated[Union[Flag, NamedFlag], Field(discriminator="kind")]


def humanize_feature_key(key: str) -> str:
    """``"unlimited_prompts"`` -> ``"Unlimited Prompts"``."""
    return " ".join(word.capitalize() for word in key.replace("_", " ").split())


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no", "off")
    return bool(value)


def normalize_feature(key: str, value: Any) -> Flag | NamedFlag:
    """Turn one raw feature value into a :data:`Feature`."""
    if isinstance(value, (Flag, NamedFlag)):
        return value
    if isinstance(value, bool):
        return Flag(enabled=value)
    if isinstance(value, dict):
        if value.get("kind") in ("flag", "named"):
            return NamedFlag.model_validate(value) if value["kind"] == "named" else Flag.model_validate(value)
        return NamedFlag(
            description=str(value.get("description") or humanize_feature_key(key)),
            enabled=_truthy(value.get("value", True)),
        )
    if value is None:
        return Flag(enabled=False)
    # strings and numbers describe themselves, e.g. "50 prompts per month"
    return NamedFlag(description=str(value), enabled=_truthy(value))


def normalize_features(raw: Any) -> tuple[str, dict[str, Flag | NamedFlag]]:
    """Split a raw feature map into ``(description, features)``."""
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else {}
    raw = dict(raw or {})

    description = raw.pop("description", None)
    if not isinstance(description, str) or not description:
        description = DEFAULT_PLAN_DESCRIPTION

    return description, {key: normalize_feature(key, value) for key, value in raw.items()}


class SubscriptionPlan(BaseModel):
    """One row of ``subscription_plans``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    tier: SubscriptionTier
    price_monthly: float = 0
    price_yearly: float = 0
    stripe_price_id_monthly: str | None = None
    stripe_price_id_yearly: str | None = None
    stripe_product_id: str | None = None
    description: str = DEFAULT_PLAN_DESCRIPTION
    features: dict[str, Feature] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _normalize_features(cls, data: Any) -> Any:
        if isinstance(data, dict) and "features" in data:
            data = dict(data)
            description, features = normalize_features(data["features"])
            data["features"] = features
            data.setdefault("description", description)
        return data

    def price_id_for(self, interval: str) -> str | None:
        """Stripe price for ``interval``. Never falls back to the other interval."""
        if interval == "month":
            return self.stripe_price_id_monthly
        if interval == "year":
            return self.stripe_price_id_yearly
        return None

    @property
    def yearly_savings(self) -> int:
        return calculate_yearly_savings(self.price_monthly, self.price_yearly)
