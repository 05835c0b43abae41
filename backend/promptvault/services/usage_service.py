"""Free-tier prompt quota tracking."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from promptvault.billing.tiers import SubscriptionTier
from promptvault.config import settings
from promptvault.gateway import DataGateway, QueryFilter
from promptvault.models.usage import PromptUsage, UsageSummary
from promptvault.models.user import AuthUser
from promptvault.notifications import NotificationVariant, Notifier
from promptvault.realtime import TableInvalidator

logger = logging.getLogger(__name__)

LIMIT_REACHED_TITLE = "Prompt limit reached"
LIMIT_REACHED_MESSAGE = (
    "You have reached your free tier prompt limit for this month. "
    "Upgrade to continue accessing more prompts."
)
LIMIT_APPROACHING_TITLE = "Prompt limit approaching"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PromptUsageTracker:
    """Counts prompt views against the monthly free-tier limit.

    The count itself lives server-side. ``has_remaining_prompts`` and
    ``increment_prompt_usage`` are atomic RPCs; this object only mirrors
    the result of the last read.
    """

    def __init__(
        self,
        gateway: DataGateway,
        user: AuthUser | None,
        *,
        notifier: Notifier,
        invalidator: TableInvalidator | None = None,
        limit: int | None = None,
        warning_threshold: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.gateway = gateway
        self.user = user
        self.notifier = notifier
        self.limit = limit if limit is not None else settings.free_tier_prompt_limit
        self.warning_threshold = (
            warning_threshold if warning_threshold is not None else settings.prompt_warning_threshold
        )
        self.clock = clock

        # None means unlimited (paid tier) or not loaded yet.
        self.prompts_remaining: int | None = None
        self.limit_reached = False
        self.is_loading = False
        self.summary: UsageSummary | None = None

        self._unregister = []
        if invalidator is not None:
            self._unregister = [
                invalidator.register("user_prompt_usage", self.fetch_prompts_remaining),
                invalidator.register("user_subscriptions", self.fetch_prompts_remaining),
            ]

    def close(self) -> None:
        for unregister in self._unregister:
            unregister()
        self._unregister = []

    async def track_prompt_usage(self) -> bool:
        """Record one prompt view. Returns False when the quota is exhausted."""
        if self.user is None:
            return False

        self.is_loading = True
        try:
            # Re-check server-side; another tab may have used the last prompt.
            has_remaining = await self.gateway.rpc(
                "has_remaining_prompts", {"user_uuid": self.user.id}
            )
            if not has_remaining:
                self._refuse()
                return False

            # The increment re-checks atomically; an explicit False means it refused.
            recorded = await self.gateway.rpc(
                "increment_prompt_usage", {"user_uuid": self.user.id}
            )
            if recorded is False:
                logger.info("Increment refused for %s: quota used up concurrently", self.user.id)
                self._refuse()
                return False
        except Exception as e:  # noqa: BLE001
            logger.error("Error tracking prompt usage for %s: %s", self.user.id, e)
            return False
        finally:
            self.is_loading = False

        await self.fetch_prompts_remaining()
        return True

    def _refuse(self) -> None:
        self.prompts_remaining = 0
        self.limit_reached = True
        self.notifier.notify(
            LIMIT_REACHED_TITLE, LIMIT_REACHED_MESSAGE, NotificationVariant.DESTRUCTIVE
        )

    async def _current_tier(self) -> SubscriptionTier:
        row = await self.gateway.query(
            "user_subscriptions",
            select="tier",
            filters=(QueryFilter("user_id", self.user.id),),
            maybe_single=True,
        )
        return SubscriptionTier((row or {}).get("tier") or SubscriptionTier.FREE)

    async def fetch_prompts_remaining(self) -> int | None:
        """Re-read this month's usage; ``None`` for unlimited tiers."""
        if self.user is None:
            self.prompts_remaining = None
            return None

        self.is_loading = True
        try:
            if await self._current_tier() != SubscriptionTier.FREE:
                self.prompts_remaining = None
                self.limit_reached = False
                self.summary = None
                return None

            month, year = PromptUsage.key_for(self.clock())
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
            logger.error("Error fetching prompts remaining for %s: %s", self.user.id, e)
            return self.prompts_remaining
        finally:
            self.is_loading = False

        self.summary = UsageSummary.from_count((row or {}).get("count") or 0, self.limit)
        self.prompts_remaining = self.summary.remaining
        self.limit_reached = self.summary.limit_reached
        self._warn(self.summary.remaining)
        return self.prompts_remaining

    def _warn(self, remaining: int) -> None:
        if 0 < remaining <= self.warning_threshold:
            plural = "" if remaining == 1 else "s"
            self.notifier.notify(
                LIMIT_APPROACHING_TITLE,
                f"You have {remaining} prompt{plural} remaining this month. "
                "Consider upgrading for unlimited access.",
                NotificationVariant.WARNING,
            )
        elif remaining <= 0:
            self.notifier.notify(
                LIMIT_REACHED_TITLE, LIMIT_REACHED_MESSAGE, NotificationVariant.DESTRUCTIVE
            )
