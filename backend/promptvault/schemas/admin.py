"""Pydantic v2 request/response schemas for the admin settings endpoints."""

from datetime import datetime

from pydantic import BaseModel

from promptvault.models.api_setting import ApiSetting
from promptvault.schemas.billing import NotificationResponse
from promptvault.services.admin_settings import format_setting_name

# --- Request schemas ---


class UpdateSettingRequest(BaseModel):
    key_value: str


# --- Response schemas ---


class AdminStatusResponse(BaseModel):
    is_admin: bool


class ApiSettingResponse(BaseModel):
    """One setting as shown on the admin page. Secret values arrive masked."""

    key_name: str
    label: str
    key_value: str = ""
    description: str | None = None
    has_value: bool = False
    is_secret: bool = False
    provider: str | None = None
    environment: str | None = None
    expires_at: datetime | None = None
    last_renewed_at: datetime | None = None

    @classmethod
    def from_setting(cls, setting: ApiSetting) -> "ApiSettingResponse":
        return cls(label=format_setting_name(setting.key_name), **setting.model_dump())


class SettingsGroupResponse(BaseModel):
    name: str
    settings: list[ApiSettingResponse] = []


class ApiSettingsResponse(BaseModel):
    """Settings grouped by provider, in display order."""

    groups: list[SettingsGroupResponse]
    notifications: list[NotificationResponse] = []


class SettingUpdateResponse(BaseModel):
    success: bool
    key_name: str
    key_value: str
    notifications: list[NotificationResponse] = []
