"""Generic live query: fetch a table, then refetch whenever it changes.

Change events are never applied incrementally: any insert, update or
delete on the watched table (within the filter) triggers one full refetch.
Overlapping refetches are not sequenced, so the last one to resolve wins;
``is_loading`` stays set until every one of them has settled.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from promptvault.errors import ErrorHandler, PromptVaultError
from promptvault.gateway import ChannelHandle, DataGateway, QueryFilter, QueryOrder
from promptvault.notifications import Notifier
from promptvault.realtime import ChannelRegistry, SubscriptionOptions, TableInvalidator

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class QueryOptions(Generic[T]):
    """What to fetch and how to shape it."""

    table: str
    select: str = "*"
    filter: QueryFilter | None = None
    order: QueryOrder | None = None
    limit: int | None = None
    single: bool = False
    error_title: str | None = None
    format_result: Callable[[list[dict[str, Any]]], list[T]] | None = None


class LiveQuery(Generic[T]):
    """Query state plus at most one live change-feed channel.

    Use as an async context manager so the channel is always released::

        async with LiveQuery(gateway, QueryOptions(table="prompts"), notifier=n) as q:
            ...  # q.data stays fresh while the block runs
    """

    def __init__(
        self,
        gateway: DataGateway,
        options: QueryOptions[T],
        *,
        notifier: Notifier,
        registry: ChannelRegistry | None = None,
        invalidator: TableInvalidator | None = None,
        on_result: Callable[[list[T]], Awaitable[None]] | None = None,
    ) -> None:
        self.gateway = gateway
        self.options = options
        self.registry = registry or ChannelRegistry(gateway)
        self.on_result = on_result
        self.data: list[T] = []
        self.is_loading = False
        self._inflight = 0

        self._errors = ErrorHandler(
            notifier, options.error_title or f"Failed to load data from {options.table}"
        )
        self._handle: ChannelHandle | None = None
        self._started = False
        self._closed = False
        self._tasks: set[asyncio.Task] = set()
        self._unregister = (
            invalidator.register(options.table, self.refetch) if invalidator is not None else None
        )

    @property
    def error(self) -> PromptVaultError | None:
        return self._errors.error

    @property
    def is_subscribed(self) -> bool:
        return self._handle is not None

    def _format(self, rows: list[dict[str, Any]]) -> list[T]:
        if self.options.format_result is None:
            return rows  # type: ignore[return-value]
        return self.options.format_result(rows)

    async def refetch(self) -> list[T]:
        """Fetch the current rows. On failure the previous data is kept."""
        if self._closed:
            return self.data

        opts = self.options
        self._inflight += 1
        self.is_loading = True
        try:
            logger.debug("Fetching data from %s...", opts.table)
            rows = await self.gateway.query(
                opts.table,
                select=opts.select,
                filters=(opts.filter,) if opts.filter is not None else (),
                order=opts.order,
                limit=opts.limit,
                single=opts.single,
            )
            raw = [rows] if opts.single else list(rows or [])
            result = self._format(raw)

            if self._closed:
                return result
            self.data = result
            self._errors.clear()
            logger.debug("Successfully fetched %d items from %s", len(result), opts.table)
            if self.on_result is not None:
                await self.on_result(result)
            return result
        except Exception as e:  # noqa: BLE001
            if not self._closed:
                self._errors.handle(e)
            return self.data
        finally:
            self._inflight -= 1
            self.is_loading = self._inflight > 0

    def _on_change(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        task = asyncio.ensure_future(self.refetch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _subscribe(self) -> None:
        flt = self.options.filter
        self._handle = await self.registry.subscribe_to_changes(
            SubscriptionOptions(
                table=self.options.table,
                filter=flt.as_realtime_filter() if flt is not None else None,
            ),
            self._on_change,
        )

    async def _unsubscribe(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            await self.registry.unsubscribe_from_changes(handle)

    async def start(self) -> "LiveQuery[T]":
        """Initial fetch, then open the change feed. Idempotent."""
        if self._started or self._closed:
            return self
        self._started = True
        await self.refetch()
        await self._subscribe()
        return self

    async def set_filter(self, new_filter: QueryFilter | None) -> None:
        """Re-scope the query. The live channel is rebuilt, never reused."""
        if new_filter == self.options.filter:
            return
        self.options = replace(self.options, filter=new_filter)
        if self._started and not self._closed:
            await self._unsubscribe()
            await self._subscribe()
            await self.refetch()

    async def close(self) -> None:
        """Release the channel. Refetches still in flight are ignored on arrival."""
        if self._closed:
            return
        self._closed = True
        await self._unsubscribe()
        if self._unregister is not None:
            self._unregister()

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def __aenter__(self) -> "LiveQuery[T]":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
