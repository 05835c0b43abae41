"""Admin-managed API settings (payment provider keys and toggles)."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ApiSetting(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key_name: str
    key_value: str = ""
    description: str | None = None
    has_value: bool = False
    is_secret: bool = False
    provider: str | None = None
    environment: str | None = None
    expires_at: datetime | None = None
    last_renewed_at: datetime | None = None

    @property
    def group(self) -> str:
        """Display group derived from the key prefix."""
        if self.key_name.startswith("PAYPAL_"):
            return "PayPal"
        if self.key_name.startswith("STRIPE_"):
            return "Stripe"
        return "General"
