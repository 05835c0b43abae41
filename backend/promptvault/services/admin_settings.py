"""Admin API settings (payment provider keys and feature toggles)."""

import asyncio
import logging
import re
from typing import Any

from promptvault.errors import error_message
from promptvault.gateway import ChannelHandle, DataGateway
from promptvault.models.api_setting import ApiSetting
from promptvault.notifications import Notifier
from promptvault.realtime import ChannelRegistry, SubscriptionOptions

logger = logging.getLogger(__name__)

SETTING_GROUPS = ("PayPal", "Stripe", "General")


def format_setting_name(name: str) -> str:
    """``PAYPAL_CLIENT_ID`` -> ``PayPal CLIENT ID``; ``openai_api_key`` -> ``Openai API Key``."""
    label = re.sub(r"\b\w", lambda m: m.group().upper(), name.replace("_", " "))
    label = re.sub("paypal", "PayPal", label, count=1, flags=re.IGNORECASE)
    return re.sub(r"\bapi\b", "API", label, count=1, flags=re.IGNORECASE)


async def check_admin_status(gateway: DataGateway) -> bool:
    """Whether the gateway's user is an admin. Any failure means no."""
    try:
        return bool(await gateway.rpc("is_admin_user", {}))
    except Exception as e:  # noqa: BLE001
        logger.error("Error checking admin status: %s", e)
        return False


class ApiSettingsStore:
    """Editable view of ``api_settings``, kept fresh by the change feed.

    Reads and writes go through the ``admin-api-settings`` function, which
    enforces the admin check and masks secret values.
    """

    def __init__(
        self,
        gateway: DataGateway,
        *,
        notifier: Notifier,
        registry: ChannelRegistry | None = None,
    ) -> None:
        self.gateway = gateway
        self.notifier = notifier
        self.registry = registry or ChannelRegistry(gateway)

        self.settings: list[ApiSetting] = []
        self.is_loading = True
        self.is_saving: dict[str, bool] = {}
        self.editable_values: dict[str, str] = {}
        self.show_secrets: dict[str, bool] = {}
        self.has_error = False

        self._handle: ChannelHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    async def fetch_settings(self) -> list[ApiSetting]:
        self.is_loading = True
        self.has_error = False
        try:
            result = await self.gateway.invoke("admin-api-settings", method="GET")
            if not result.ok:
                raise RuntimeError(result.error)

            data: dict[str, Any] = result.data or {}
            self.settings = [ApiSetting.model_validate(row) for row in data.get("settings") or []]
            self.editable_values = {s.key_name: s.key_value for s in self.settings}
        except Exception as e:  # noqa: BLE001
            logger.error("Error fetching API settings: %s", error_message(e))
            self.has_error = True
            self.notifier.error("Failed to load API settings. Please try again.")
        finally:
            self.is_loading = False
        return self.settings

    def set_value(self, key: str, value: str) -> None:
        """Stage an edit without saving it."""
        self.editable_values[key] = value

    def toggle_show_secret(self, key: str) -> bool:
        self.show_secrets[key] = not self.show_secrets.get(key, False)
        return self.show_secrets[key]

    async def _post(self, key: str, value: str) -> bool:
        self.is_saving[key] = True
        try:
            result = await self.gateway.invoke(
                "admin-api-settings",
                method="POST",
                body={"key_name": key, "key_value": value},
            )
            if not result.ok:
                raise RuntimeError(result.error)
        except Exception as e:  # noqa: BLE001
            logger.error("Error updating setting %s: %s", key, error_message(e))
            self.notifier.error("Failed to update setting. Please try again.")
            return False
        finally:
            self.is_saving[key] = False

        self.notifier.notify("Success", f'Setting "{key}" updated successfully.')
        return True

    def _apply_local(self, key: str, value: str) -> None:
        self.settings = [
            s.model_copy(update={"key_value": value, "has_value": bool(value)})
            if s.key_name == key
            else s
            for s in self.settings
        ]
        self.editable_values[key] = value

    async def save_setting(self, key: str) -> bool:
        """Save the staged value for ``key``."""
        value = self.editable_values.get(key, "")
        if not await self._post(key, value):
            return False
        self._apply_local(key, value)
        return True

    async def update_setting(self, key: str, value: str) -> bool:
        self.set_value(key, value)
        return await self.save_setting(key)

    async def toggle_setting(self, key: str) -> bool:
        """Flip a ``"true"``/``"false"`` setting."""
        current = next((s.key_value for s in self.settings if s.key_name == key), "false")
        new_value = "false" if current == "true" else "true"
        if not await self._post(key, new_value):
            return False
        self._apply_local(key, new_value)
        return True

    @property
    def grouped_settings(self) -> dict[str, list[ApiSetting]]:
        grouped: dict[str, list[ApiSetting]] = {group: [] for group in SETTING_GROUPS}
        for setting in self.settings:
            grouped[setting.group].append(setting)
        return grouped

    # --- Live lifecycle ---

    def _on_change(self, payload: dict[str, Any]) -> None:
        task = asyncio.ensure_future(self.fetch_settings())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def start(self) -> "ApiSettingsStore":
        await self.fetch_settings()
        if self._handle is None:
            self._handle = await self.registry.subscribe_to_changes(
                SubscriptionOptions(table="api_settings"), self._on_change
            )
        return self

    async def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            await self.registry.unsubscribe_from_changes(handle)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def __aenter__(self) -> "ApiSettingsStore":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
