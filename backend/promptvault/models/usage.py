"""Monthly prompt usage counters."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


class PromptUsage(BaseModel):
    """One row of ``user_prompt_usage``, keyed by ``(user_id, month, year)``."""

    model_config = ConfigDict(extra="ignore")

    count: int = 0
    month: int
    year: int
    user_id: str | None = None

    @classmethod
    def key_for(cls, moment: datetime) -> tuple[int, int]:
        """``(month, year)`` usage key for ``moment``, read in UTC."""
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return moment.month, moment.year


class UsageSummary(BaseModel):
    """Derived usage view: ``remaining = max(0, limit - count)``."""

    count: int
    limit: int
    remaining: int

    @classmethod
    def from_count(cls, count: int, limit: int) -> "UsageSummary":
        return cls(count=count, limit=limit, remaining=max(0, limit - count))

    @property
    def limit_reached(self) -> bool:
        return self.remaining <= 0
