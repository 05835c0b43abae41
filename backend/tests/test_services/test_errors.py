"""Tests for the error taxonomy, ErrorHandler and Notifier."""

from promptvault.errors import (
    DEFAULT_ERROR_MESSAGE,
    ErrorHandler,
    PromptVaultError,
    ValidationFailed,
    error_message,
)
from promptvault.notifications import NotificationVariant, Notifier


class TestErrorMessage:
    def test_none_and_empty(self):
        assert error_message(None) == DEFAULT_ERROR_MESSAGE
        assert error_message("") == DEFAULT_ERROR_MESSAGE
        assert error_message(RuntimeError()) == DEFAULT_ERROR_MESSAGE

    def test_message_attribute_wins(self):
        assert error_message(ValidationFailed("Selected plan not found.")) == "Selected plan not found."

    def test_plain_exception(self):
        assert error_message(ValueError("bad")) == "bad"


class TestErrorHandler:
    """Test error routing to notifications."""

    def test_handle_wraps_and_notifies(self):
        notifier = Notifier()
        handler = ErrorHandler(notifier, error_title="Error")

        wrapped = handler.handle(RuntimeError("socket closed"))

        assert isinstance(wrapped, PromptVaultError)
        assert handler.error is wrapped
        (note,) = notifier.items
        assert (note.title, note.description) == ("Error", "socket closed")
        assert note.variant == NotificationVariant.DESTRUCTIVE

    def test_typed_error_kept(self):
        handler = ErrorHandler(Notifier())
        error = ValidationFailed("nope")

        assert handler.handle(error, title="Checkout failed") is error

    def test_override_message(self):
        notifier = Notifier()
        ErrorHandler(notifier).handle("raw", message="Friendly text")

        assert notifier.items[0].description == "Friendly text"

    def test_clear(self):
        handler = ErrorHandler(Notifier())
        handler.handle("x")
        handler.clear()
        assert handler.error is None


class TestNotifier:
    def test_drain(self):
        notifier = Notifier()
        notifier.notify("Saved", "Prompt saved")
        notifier.error("Failed")

        drained = notifier.drain()

        assert [n.title for n in drained] == ["Saved", "Error"]
        assert len(notifier) == 0
