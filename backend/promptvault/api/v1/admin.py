"""Admin endpoints: admin check and payment provider settings."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from promptvault.api.deps import (
    get_current_user,
    get_gateway,
    get_notifier,
    get_settings_store,
    require_admin,
)
from promptvault.gateway import DataGateway
from promptvault.models.user import AuthUser
from promptvault.notifications import Notifier
from promptvault.schemas.admin import (
    AdminStatusResponse,
    ApiSettingResponse,
    ApiSettingsResponse,
    SettingsGroupResponse,
    SettingUpdateResponse,
    UpdateSettingRequest,
)
from promptvault.schemas.billing import NotificationResponse
from promptvault.services.admin_settings import ApiSettingsStore, check_admin_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


def _notifications(notifier: Notifier) -> list[NotificationResponse]:
    return [NotificationResponse.from_notification(n) for n in notifier.drain()]


async def _load(store: ApiSettingsStore) -> None:
    await store.fetch_settings()
    if store.has_error:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to load API settings. Please try again.",
        )


def _updated(store: ApiSettingsStore, key_name: str, notifier: Notifier) -> SettingUpdateResponse:
    return SettingUpdateResponse(
        success=True,
        key_name=key_name,
        key_value=store.editable_values.get(key_name, ""),
        notifications=_notifications(notifier),
    )


@router.get("/status", response_model=AdminStatusResponse)
async def admin_status(
    gateway: DataGateway = Depends(get_gateway),
    current_user: AuthUser = Depends(get_current_user),
) -> AdminStatusResponse:
    """Whether the caller may open the admin pages."""
    is_admin = await check_admin_status(gateway)
    logger.debug("Admin status for %s: %s", current_user.id, is_admin)
    return AdminStatusResponse(is_admin=is_admin)


@router.get("/settings", response_model=ApiSettingsResponse)
async def list_settings(
    _admin_check: None = Depends(require_admin),  # Admin gating
    store: ApiSettingsStore = Depends(get_settings_store),
    notifier: Notifier = Depends(get_notifier),
) -> ApiSettingsResponse:
    await _load(store)
    return ApiSettingsResponse(
        groups=[
            SettingsGroupResponse(
                name=name, settings=[ApiSettingResponse.from_setting(s) for s in settings]
            )
            for name, settings in store.grouped_settings.items()
        ],
        notifications=_notifications(notifier),
    )


@router.put("/settings/{key_name}", response_model=SettingUpdateResponse)
async def update_setting(
    key_name: str,
    body: UpdateSettingRequest,
    _admin_check: None = Depends(require_admin),  # Admin gating
    store: ApiSettingsStore = Depends(get_settings_store),
    notifier: Notifier = Depends(get_notifier),
) -> SettingUpdateResponse:
    """Store a new value for ``key_name``."""
    if not await store.update_setting(key_name, body.key_value):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to update setting. Please try again.",
        )
    logger.info("Admin updated setting %s", key_name)
    return _updated(store, key_name, notifier)


@router.post("/settings/{key_name}/toggle", response_model=SettingUpdateResponse)
async def toggle_setting(
    key_name: str,
    _admin_check: None = Depends(require_admin),  # Admin gating
    store: ApiSettingsStore = Depends(get_settings_store),
    notifier: Notifier = Depends(get_notifier),
) -> SettingUpdateResponse:
    """Flip a ``"true"``/``"false"`` feature toggle."""
    await _load(store)
    if not await store.toggle_setting(key_name):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to update setting. Please try again.",
        )
    logger.info("Admin toggled setting %s", key_name)
    return _updated(store, key_name, notifier)
