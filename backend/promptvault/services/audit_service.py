"""Subscription audit trail: append-only events for funnel analytics.

Every write here is best-effort: a failed insert is logged and reported
as ``False`` so it can never mask the error of the action being audited.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from promptvault.gateway import DataGateway
from promptvault.models.events import PaymentFailure, SubscriptionEvent

logger = logging.getLogger(__name__)

# Structured event stream, separate from module diagnostics.
event_logger = logging.getLogger("promptvault.subscription")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditService:
    """Writes ``subscription_events`` / ``payment_failures`` rows for one gateway."""

    def __init__(self, gateway: DataGateway) -> None:
        self.gateway = gateway

    async def log_subscription_event(
        self,
        user_id: str,
        event_type: str,
        old_tier: str | None = None,
        new_tier: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        event = SubscriptionEvent(
            user_id=user_id,
            event_type=event_type,
            old_tier=old_tier,
            new_tier=new_tier,
            metadata={"timestamp": _now_iso(), **(metadata or {})},
        )
        event_logger.info(
            "Subscription event %s",
            event_type,
            extra={
                "user_id": user_id,
                "event_type": event_type,
                "event_metadata": event.metadata,
            },
        )
        try:
            await self.gateway.insert("subscription_events", event.model_dump())
        except Exception as e:  # noqa: BLE001
            logger.warning("Error logging subscription event %s for %s: %s", event_type, user_id, e)
            return False
        return True

    async def track_payment_failure(
        self,
        user_id: str,
        subscription_id: str | None = None,
        payment_intent_id: str | None = None,
        amount: float | None = None,
        currency: str | None = None,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        failure = PaymentFailure(
            user_id=user_id,
            subscription_id=subscription_id,
            payment_intent_id=payment_intent_id,
            amount=amount,
            currency=currency,
            reason=reason,
            metadata=metadata or {},
        )
        event_logger.error(
            "Payment failed for %s: %s",
            user_id,
            reason,
            extra={"user_id": user_id, "subscription_id": subscription_id},
        )
        try:
            await self.gateway.insert("payment_failures", failure.model_dump())
        except Exception as e:  # noqa: BLE001
            logger.warning("Error tracking payment failure for %s: %s", user_id, e)
            return False
        return True

    async def track_subscription_change(
        self, user_id: str | None, old_tier: str, new_tier: str, reason: str
    ) -> bool:
        if not user_id:
            return False
        logger.info(
            "User %s subscription changed from %s to %s (%s)", user_id, old_tier, new_tier, reason
        )
        return await self.log_subscription_event(
            user_id, "subscription_changed", old_tier, new_tier, {"reason": reason}
        )

    # Funnel events

    async def checkout_initiated(
        self, user_id: str, price_id: str, interval: str, plan_id: str | None = None
    ) -> bool:
        return await self.log_subscription_event(
            user_id,
            "checkout_initiated",
            metadata={"price_id": price_id, "interval": interval, "plan_id": plan_id},
        )

    async def checkout_session_created(
        self, user_id: str, session_id: str | None, customer_id: str | None
    ) -> bool:
        return await self.log_subscription_event(
            user_id,
            "checkout_session_created",
            metadata={"session_id": session_id, "customer_id": customer_id},
        )

    async def checkout_abandoned(self, user_id: str, reason: str | None = None) -> bool:
        return await self.log_subscription_event(
            user_id, "checkout_abandoned", metadata={"reason": reason}
        )

    async def checkout_completed(
        self,
        user_id: str,
        session_id: str,
        tier: str | None,
        subscription_id: str | None = None,
    ) -> bool:
        return await self.log_subscription_event(
            user_id,
            "checkout_completed",
            new_tier=tier,
            metadata={"session_id": session_id, "subscription_id": subscription_id},
        )

    async def subscription_updated(
        self,
        user_id: str,
        subscription_id: str,
        old_tier: str | None,
        new_tier: str | None,
        update_type: str,
    ) -> bool:
        return await self.log_subscription_event(
            user_id,
            "subscription_updated",
            old_tier,
            new_tier,
            {"subscription_id": subscription_id, "update_type": update_type},
        )

    async def subscription_canceled(
        self, user_id: str, subscription_id: str, tier: str | None, immediate: bool = False
    ) -> bool:
        return await self.log_subscription_event(
            user_id,
            "subscription_canceled",
            tier,
            tier,
            {"subscription_id": subscription_id, "immediate": immediate},
        )

    async def subscription_reactivated(
        self, user_id: str, subscription_id: str, tier: str | None
    ) -> bool:
        return await self.log_subscription_event(
            user_id,
            "subscription_reactivated",
            tier,
            tier,
            {"subscription_id": subscription_id},
        )
