"""Shared API dependencies: single import point for all routers.

Every request gets its own gateway bound to the caller's access token and
its own :class:`Notifier`; nothing is shared between requests::

    from promptvault.api.deps import get_current_user, get_subscription_state
"""

import logging
from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, status

from promptvault.auth.dependencies import get_current_user
from promptvault.gateway import DataGateway, open_gateway
from promptvault.models.user import AuthUser
from promptvault.notifications import Notifier
from promptvault.realtime import TableInvalidator
from promptvault.services.admin_settings import ApiSettingsStore, check_admin_status
from promptvault.services.audit_service import AuditService
from promptvault.services.subscription_actions import SubscriptionActions
from promptvault.services.subscription_state import SubscriptionState
from promptvault.services.usage_service import PromptUsageTracker

logger = logging.getLogger(__name__)


async def get_gateway(
    current_user: AuthUser = Depends(get_current_user),
) -> AsyncIterator[DataGateway]:
    """Gateway acting as the authenticated user, closed after the response."""
    async with open_gateway(current_user.access_token) as gateway:
        yield gateway


async def get_public_gateway() -> AsyncIterator[DataGateway]:
    async with open_gateway() as gateway:
        yield gateway


def get_notifier() -> Notifier:
    return Notifier()


def get_invalidator() -> TableInvalidator:
    return TableInvalidator()


async def get_subscription_state(
    gateway: DataGateway = Depends(get_gateway),
    current_user: AuthUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
    invalidator: TableInvalidator = Depends(get_invalidator),
) -> SubscriptionState:
    state = SubscriptionState(gateway, current_user, notifier=notifier, invalidator=invalidator)
    return await state.load()


def get_subscription_actions(
    state: SubscriptionState = Depends(get_subscription_state),
) -> SubscriptionActions:
    return SubscriptionActions(state, audit=AuditService(state.gateway))


def get_usage_tracker(
    gateway: DataGateway = Depends(get_gateway),
    current_user: AuthUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
) -> PromptUsageTracker:
    return PromptUsageTracker(gateway, current_user, notifier=notifier)


async def require_admin(
    gateway: DataGateway = Depends(get_gateway),
    current_user: AuthUser = Depends(get_current_user),
) -> None:
    """Raise 403 unless the caller is listed in ``admin_users``."""
    if not await check_admin_status(gateway):
        logger.warning("User %s denied admin access", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )


def get_settings_store(
    gateway: DataGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> ApiSettingsStore:
    return ApiSettingsStore(gateway, notifier=notifier)


__all__ = [
    "get_current_user",
    "get_gateway",
    "get_public_gateway",
    "get_notifier",
    "get_invalidator",
    "get_subscription_state",
    "get_subscription_actions",
    "get_usage_tracker",
    "require_admin",
    "get_settings_store",
]
