"""Tests for the admin API settings store."""

from fakes import FakeGateway

from promptvault.gateway import FunctionResult
from promptvault.notifications import NotificationVariant
from promptvault.services.admin_settings import (
    ApiSettingsStore,
    check_admin_status,
    format_setting_name,
)

SETTINGS = [
    {"key_name": "STRIPE_SECRET_KEY", "key_value": "sk_****", "is_secret": True, "has_value": True},
    {"key_name": "PAYPAL_CLIENT_ID", "key_value": "", "has_value": False},
    {"key_name": "ENABLE_PAYPAL", "key_value": "false", "has_value": True},
]


def _serve_settings(gateway: FakeGateway, rows=None) -> list:
    """Answer GET with ``rows`` and record POST bodies."""
    posted = []

    def handler(body):
        if body is None:
            return FunctionResult(data={"settings": rows if rows is not None else SETTINGS})
        posted.append(body)
        return FunctionResult(data={"success": True})

    gateway.function_results["admin-api-settings"] = handler
    return posted


class TestFormatSettingName:
    def test_paypal_prefix(self):
        assert format_setting_name("PAYPAL_CLIENT_ID") == "PayPal CLIENT ID"

    def test_api_word(self):
        assert format_setting_name("openai_api_key") == "Openai API Key"

    def test_api_inside_word_untouched(self):
        assert format_setting_name("rapid_mode") == "Rapid Mode"


class TestCheckAdminStatus:
    """Test the is_admin_user RPC wrapper."""

    async def test_admin(self, gateway: FakeGateway):
        gateway.rpc_results["is_admin_user"] = True
        assert await check_admin_status(gateway) is True

    async def test_not_admin(self, gateway: FakeGateway):
        gateway.rpc_results["is_admin_user"] = False
        assert await check_admin_status(gateway) is False

    async def test_error_fails_closed(self, gateway: FakeGateway):
        gateway.rpc_results["is_admin_user"] = RuntimeError("permission denied")
        assert await check_admin_status(gateway) is False


class TestApiSettingsStore:
    """Test fetching, editing and saving settings."""

    async def test_fetch(self, gateway: FakeGateway, notifier):
        _serve_settings(gateway)
        store = ApiSettingsStore(gateway, notifier=notifier)

        settings = await store.fetch_settings()

        assert [s.key_name for s in settings] == [
            "STRIPE_SECRET_KEY",
            "PAYPAL_CLIENT_ID",
            "ENABLE_PAYPAL",
        ]
        assert store.editable_values["STRIPE_SECRET_KEY"] == "sk_****"
        assert store.is_loading is False
        assert gateway.calls_to("invoke", "admin-api-settings")[0][2] == "GET"

    async def test_fetch_failure(self, gateway: FakeGateway, notifier):
        gateway.function_results["admin-api-settings"] = FunctionResult(error="Forbidden")
        store = ApiSettingsStore(gateway, notifier=notifier)

        await store.fetch_settings()

        assert store.has_error is True
        assert store.settings == []
        assert notifier.items[0].description == "Failed to load API settings. Please try again."

    async def test_grouped_settings(self, gateway: FakeGateway, notifier):
        _serve_settings(gateway)
        store = ApiSettingsStore(gateway, notifier=notifier)
        await store.fetch_settings()

        grouped = store.grouped_settings

        assert [s.key_name for s in grouped["Stripe"]] == ["STRIPE_SECRET_KEY"]
        assert [s.key_name for s in grouped["PayPal"]] == ["PAYPAL_CLIENT_ID"]
        assert [s.key_name for s in grouped["General"]] == ["ENABLE_PAYPAL"]

    async def test_save_staged_value(self, gateway: FakeGateway, notifier):
        posted = _serve_settings(gateway)
        store = ApiSettingsStore(gateway, notifier=notifier)
        await store.fetch_settings()

        store.set_value("PAYPAL_CLIENT_ID", "client-abc")
        assert await store.save_setting("PAYPAL_CLIENT_ID") is True

        assert posted == [{"key_name": "PAYPAL_CLIENT_ID", "key_value": "client-abc"}]
        saved = next(s for s in store.settings if s.key_name == "PAYPAL_CLIENT_ID")
        assert saved.has_value is True
        assert store.is_saving["PAYPAL_CLIENT_ID"] is False
        assert notifier.items[-1].description == 'Setting "PAYPAL_CLIENT_ID" updated successfully.'

    async def test_save_failure_keeps_settings(self, gateway: FakeGateway, notifier):
        _serve_settings(gateway)
        store = ApiSettingsStore(gateway, notifier=notifier)
        await store.fetch_settings()
        gateway.function_results["admin-api-settings"] = FunctionResult(error="Forbidden")

        assert await store.update_setting("PAYPAL_CLIENT_ID", "client-abc") is False

        unchanged = next(s for s in store.settings if s.key_name == "PAYPAL_CLIENT_ID")
        assert unchanged.key_value == ""
        assert notifier.items[-1].variant == NotificationVariant.DESTRUCTIVE

    async def test_toggle_setting(self, gateway: FakeGateway, notifier):
        posted = _serve_settings(gateway)
        store = ApiSettingsStore(gateway, notifier=notifier)
        await store.fetch_settings()

        await store.toggle_setting("ENABLE_PAYPAL")
        await store.toggle_setting("ENABLE_PAYPAL")

        assert [body["key_value"] for body in posted] == ["true", "false"]

    def test_toggle_show_secret(self, gateway: FakeGateway, notifier):
        store = ApiSettingsStore(gateway, notifier=notifier)

        assert store.toggle_show_secret("STRIPE_SECRET_KEY") is True
        assert store.toggle_show_secret("STRIPE_SECRET_KEY") is False

    async def test_change_feed_refetches(self, gateway: FakeGateway, notifier):
        _serve_settings(gateway)
        async with ApiSettingsStore(gateway, notifier=notifier) as store:
            _serve_settings(gateway, rows=SETTINGS[:1])
            gateway.emit("api_settings", "UPDATE")
            await store.wait_idle()

            assert len(store.settings) == 1

        assert gateway.channels == {}
