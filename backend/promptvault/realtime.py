"""Live change-feed channels and table-keyed cache invalidation."""

import asyncio
import itertools
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from promptvault.gateway import ChangeCallback, ChangeEvent, ChannelHandle, DataGateway

logger = logging.getLogger(__name__)

Refetch = Callable[[], Awaitable[Any]]

_channel_counter = itertools.count(1)


@dataclass(frozen=True)
class SubscriptionOptions:
    table: str
    schema: str = "public"
    event: ChangeEvent = "*"
    filter: str | None = None


def create_channel_name(options: SubscriptionOptions) -> str:
    """Unique channel name; two subscriptions never share a channel."""
    return (
        f"{options.schema}-{options.table}-{options.event}-"
        f"{options.filter or ''}-{next(_channel_counter)}"
    )


class ChannelRegistry:
    """Tracks the live channels opened through one gateway."""

    def __init__(self, gateway: DataGateway) -> None:
        self.gateway = gateway
        self._active: dict[str, ChannelHandle] = {}

    async def subscribe_to_changes(
        self, options: SubscriptionOptions, callback: ChangeCallback
    ) -> ChannelHandle:
        name = create_channel_name(options)
        logger.info("Setting up real-time subscription for %s", options.table)

        def _on_change(payload: dict[str, Any]) -> None:
            logger.debug("Received change event for %s: %s", options.table, payload.get("eventType"))
            callback(payload)

        handle = await self.gateway.subscribe(
            options.table,
            callback=_on_change,
            filter=options.filter,
            event=options.event,
            schema=options.schema,
            name=name,
        )
        self._active[handle.name] = handle
        return handle

    async def unsubscribe_from_changes(self, handle: ChannelHandle) -> None:
        if self._active.pop(handle.name, None) is not None:
            logger.info("Cleaning up subscription for %s", handle.name)
        await self.gateway.unsubscribe(handle)

    async def cleanup_all(self) -> None:
        logger.info("Cleaning up all %d active subscriptions", len(self._active))
        handles, self._active = list(self._active.values()), {}
        for handle in handles:
            await self.gateway.unsubscribe(handle)

    @property
    def active_count(self) -> int:
        return len(self._active)


class TableInvalidator:
    """Maps table names to the refetch callbacks of everything that reads them.

    A write through an action, or a change-feed event, invalidates by table
    name; every dependent reader re-derives its state from the server.
    """

    def __init__(self) -> None:
        self._dependents: dict[str, list[Refetch]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def register(self, table: str, refetch: Refetch) -> Callable[[], None]:
        """Declare that ``refetch`` depends on ``table``. Returns an unregister callable."""
        self._dependents[table].append(refetch)

        def _unregister() -> None:
            callbacks = self._dependents.get(table, [])
            if refetch in callbacks:
                callbacks.remove(refetch)

        return _unregister

    def dependents(self, table: str) -> list[Refetch]:
        return list(self._dependents.get(table, []))

    async def invalidate(self, table: str) -> int:
        """Run every refetch registered for ``table``; returns how many ran."""
        callbacks = self.dependents(table)
        logger.debug("Invalidating %s (%d dependents)", table, len(callbacks))
        for refetch in callbacks:
            await refetch()
        return len(callbacks)

    def schedule(self, table: str) -> asyncio.Task:
        """Invalidate ``table`` in the background."""
        return self.spawn(self.invalidate(table))

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait for all background refetches, including ones they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
