"""Error taxonomy and the shared error-handling contract.

Action and query objects never let these escape to their callers. They are
raised internally, caught at the object boundary, and turned into an
``ActionResult`` or a notification by :class:`ErrorHandler`.
"""

import logging

from promptvault.notifications import Notifier

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TITLE = "An error occurred"
DEFAULT_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


class PromptVaultError(Exception):
    """Base class for all errors raised inside promptvault."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or DEFAULT_ERROR_MESSAGE)
        self.message = message or DEFAULT_ERROR_MESSAGE


class AuthenticationRequired(PromptVaultError):
    """The operation needs a signed-in user; no network call was made."""


class ValidationFailed(PromptVaultError):
    """Input was rejected locally; no network call was made."""


class RemoteCallFailed(PromptVaultError):
    """A query, RPC or serverless function reported an error."""

    def __init__(self, message: str | None = None, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


def error_message(error: BaseException | str | None, default: str = DEFAULT_ERROR_MESSAGE) -> str:
    """Return a human-readable message for ``error``, falling back to ``default``."""
    if error is None:
        return default
    if isinstance(error, str):
        return error or default
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or default


class ErrorHandler:
    """Route errors to the log and to the user's notifications.

    Keeps the most recent error in :attr:`error` until :meth:`clear` is
    called, mirroring the stale-but-available policy of the query layer.
    """

    def __init__(
        self,
        notifier: Notifier,
        error_title: str = DEFAULT_ERROR_TITLE,
        default_message: str = DEFAULT_ERROR_MESSAGE,
    ) -> None:
        self.notifier = notifier
        self.error_title = error_title
        self.default_message = default_message
        self.error: PromptVaultError | None = None

    def handle(
        self,
        error: BaseException | str | None,
        title: str | None = None,
        message: str | None = None,
    ) -> PromptVaultError:
        """Record ``error``, log it and push a destructive notification."""
        if isinstance(error, PromptVaultError):
            wrapped = error
        else:
            wrapped = PromptVaultError(error_message(error, self.default_message))
        self.error = wrapped

        logger.error("%s: %s", title or self.error_title, wrapped.message)
        self.notifier.error(message or wrapped.message, title=title or self.error_title)
        return wrapped

    def clear(self) -> None:
        self.error = None
