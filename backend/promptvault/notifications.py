"""User-facing notifications (toasts) collected per session."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class NotificationVariant(str, Enum):
    DEFAULT = "default"
    WARNING = "warning"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    """A single non-blocking message for the user."""

    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """Collects notifications so the HTTP layer can return them to the browser."""

    def __init__(self) -> None:
        self._items: list[Notification] = []

    def notify(
        self,
        title: str,
        description: str,
        variant: NotificationVariant = NotificationVariant.DEFAULT,
    ) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self._items.append(notification)
        logger.debug("Notification [%s] %s: %s", variant.value, title, description)
        return notification

    def error(self, description: str, title: str = "Error") -> Notification:
        return self.notify(title, description, NotificationVariant.DESTRUCTIVE)

    @property
    def items(self) -> list[Notification]:
        return list(self._items)

    def drain(self) -> list[Notification]:
        """Return and forget everything collected so far."""
        items, self._items = self._items, []
        return items

    def __len__(self) -> int:
        return len(self._items)
