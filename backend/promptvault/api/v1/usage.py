"""Prompt usage endpoints for the free-tier monthly quota."""

from fastapi import APIRouter, Depends

from promptvault.api.deps import get_notifier, get_usage_tracker
from promptvault.notifications import Notifier
from promptvault.schemas.billing import NotificationResponse, UsageResponse
from promptvault.services.usage_service import PromptUsageTracker

router = APIRouter(prefix="/api/v1/usage", tags=["usage"])


def _usage_response(
    tracker: PromptUsageTracker, notifier: Notifier, recorded: bool | None = None
) -> UsageResponse:
    return UsageResponse(
        recorded=recorded,
        prompts_remaining=tracker.prompts_remaining,
        limit_reached=tracker.limit_reached,
        limit=tracker.limit if tracker.prompts_remaining is not None else None,
        notifications=[NotificationResponse.from_notification(n) for n in notifier.drain()],
    )


@router.get("/remaining", response_model=UsageResponse)
async def get_prompts_remaining(
    tracker: PromptUsageTracker = Depends(get_usage_tracker),
    notifier: Notifier = Depends(get_notifier),
) -> UsageResponse:
    """Prompts left this month (``null`` for unlimited tiers)."""
    await tracker.fetch_prompts_remaining()
    return _usage_response(tracker, notifier)


@router.post("/track", response_model=UsageResponse)
async def track_prompt_usage(
    tracker: PromptUsageTracker = Depends(get_usage_tracker),
    notifier: Notifier = Depends(get_notifier),
) -> UsageResponse:
    """Record one prompt view. ``recorded`` is false once the quota is used up."""
    recorded = await tracker.track_prompt_usage()
    return _usage_response(tracker, notifier, recorded=recorded)
