"""Remote data gateway for Supabase tables, RPCs, edge functions and realtime.

Everything above this module talks to :class:`DataGateway`, never to the
Supabase client directly, so tests can substitute an in-memory fake.
"""

import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx
from supabase import (
    AsyncClient,
    AsyncClientOptions,
    AuthApiError,
    FunctionsHttpError,
    FunctionsRelayError,
    acreate_client,
)

from promptvault.config import settings
from promptvault.models.user import AuthUser

logger = logging.getLogger(__name__)

ChangeEvent = Literal["INSERT", "UPDATE", "DELETE", "*"]
ChangeCallback = Callable[[dict[str, Any]], None]

# Tables reachable through the query layer.
TABLES: frozenset[str] = frozenset(
    {
        "prompt_categories",
        "admin_users",
        "api_settings",
        "payment_failures",
        "profiles",
        "prompts",
        "saved_prompts",
        "stripe_events",
        "subscription_events",
        "subscription_plans",
        "theme_settings",
        "user_prompt_usage",
        "user_purchases",
        "user_subscriptions",
        "active_subscriptions",
    }
)


@dataclass(frozen=True)
class QueryFilter:
    """Single-column comparison, e.g. ``QueryFilter("user_id", uid)``."""

    column: str
    value: Any
    operator: str = "eq"

    def as_realtime_filter(self) -> str:
        """Filter expression understood by the live change feed."""
        return f"{self.column}={self.operator}.{self.value}"


@dataclass(frozen=True)
class QueryOrder:
    column: str
    ascending: bool = True


@dataclass(frozen=True)
class FunctionResult:
    """Outcome of an edge function call: ``data`` on success, ``error`` message otherwise."""

    data: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ChannelHandle:
    """A live change-feed subscription. Pass back to :meth:`DataGateway.unsubscribe`."""

    name: str
    table: str
    filter: str | None = None
    event: ChangeEvent = "*"
    channel: Any = None


class DataGateway(Protocol):
    """Abstract contract of the hosted auth / database / realtime / functions platform."""

    async def get_user(self, access_token: str) -> AuthUser | None: ...

    async def query(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Sequence[QueryFilter] = (),
        order: QueryOrder | None = None,
        limit: int | None = None,
        single: bool = False,
        maybe_single: bool = False,
    ) -> Any: ...

    async def insert(self, table: str, row: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def rpc(self, name: str, args: dict[str, Any]) -> Any: ...

    async def invoke(
        self, name: str, *, method: str = "POST", body: dict[str, Any] | None = None
    ) -> FunctionResult: ...

    async def subscribe(
        self,
        table: str,
        *,
        callback: ChangeCallback,
        filter: str | None = None,
        event: ChangeEvent = "*",
        schema: str = "public",
        name: str | None = None,
    ) -> ChannelHandle: ...

    async def unsubscribe(self, handle: ChannelHandle) -> None: ...

    async def close(self) -> None: ...


class SupabaseGateway:
    """:class:`DataGateway` backed by the async ``supabase`` client.

    Create one per access token so row-level security evaluates as the
    calling user; the anonymous gateway only sees public rows.

    PostgREST, edge functions and auth all share one ``httpx.AsyncClient``
    owned by the gateway; :meth:`close` releases it.
    """

    def __init__(self, client: AsyncClient, http_client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._http_client = http_client

    @classmethod
    async def create(cls, access_token: str | None = None) -> "SupabaseGateway":
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        http_client = httpx.AsyncClient(timeout=settings.supabase_timeout, follow_redirects=True)
        try:
            client = await acreate_client(
                settings.supabase_url,
                settings.supabase_anon_key,
                options=AsyncClientOptions(headers=headers, httpx_client=http_client),
            )
        except Exception:
            await http_client.aclose()
            raise
        if access_token:
            client.postgrest.auth(access_token)
            client.functions.set_auth(access_token)
        return cls(client, http_client)

    async def get_user(self, access_token: str) -> AuthUser | None:
        try:
            response = await self._client.auth.get_user(access_token)
        except AuthApiError as e:
            logger.warning("Supabase rejected access token: %s", e)
            return None
        if response is None or response.user is None:
            return None
        return AuthUser(
            id=str(response.user.id),
            email=response.user.email,
            role=response.user.role or "authenticated",
            access_token=access_token,
        )

    async def query(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Sequence[QueryFilter] = (),
        order: QueryOrder | None = None,
        limit: int | None = None,
        single: bool = False,
        maybe_single: bool = False,
    ) -> Any:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")

        builder = self._client.table(table).select(select)
        for f in filters:
            builder = builder.filter(f.column, f.operator, f.value)
        if order is not None:
            builder = builder.order(order.column, desc=not order.ascending)
        if limit is not None:
            builder = builder.limit(limit)
        if single:
            builder = builder.single()
        elif maybe_single:
            builder = builder.maybe_single()

        logger.debug("Querying %s (filters=%s)", table, filters)
        response = await builder.execute()
        # maybe_single() yields no response at all when nothing matched
        if response is None:
            return None
        return response.data

    async def insert(self, table: str, row: dict[str, Any]) -> list[dict[str, Any]]:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        response = await self._client.table(table).insert(row).execute()
        return response.data

    async def rpc(self, name: str, args: dict[str, Any]) -> Any:
        logger.debug("Calling RPC %s", name)
        response = await self._client.rpc(name, args).execute()
        return response.data

    async def invoke(
        self, name: str, *, method: str = "POST", body: dict[str, Any] | None = None
    ) -> FunctionResult:
        options: dict[str, Any] = {"method": method, "responseType": "json"}
        if body is not None:
            options["body"] = body

        logger.info("Invoking edge function %s (%s)", name, method)
        try:
            data = await self._client.functions.invoke(name, invoke_options=options)
        except (FunctionsHttpError, FunctionsRelayError) as e:
            logger.error("Edge function %s failed: %s", name, e)
            return FunctionResult(error=getattr(e, "message", None) or str(e))
        except httpx.HTTPError as e:
            logger.error("Network error invoking %s: %s", name, e)
            return FunctionResult(error=str(e))

        if isinstance(data, dict) and data.get("error"):
            return FunctionResult(data=data, error=str(data["error"]))
        return FunctionResult(data=data)

    async def subscribe(
        self,
        table: str,
        *,
        callback: ChangeCallback,
        filter: str | None = None,
        event: ChangeEvent = "*",
        schema: str = "public",
        name: str | None = None,
    ) -> ChannelHandle:
        channel_name = name or f"{schema}-{table}-{event}-{filter or ''}"
        channel = self._client.channel(channel_name)
        channel.on_postgres_changes(
            event,
            callback,
            table=table,
            schema=schema,
            filter=filter,
        )
        await channel.subscribe(
            lambda status, err=None: logger.debug(
                "Subscription status for %s: %s", table, status
            )
        )
        return ChannelHandle(name=channel_name, table=table, filter=filter, event=event, channel=channel)

    async def unsubscribe(self, handle: ChannelHandle) -> None:
        if handle.channel is not None:
            await self._client.remove_channel(handle.channel)

    async def close(self) -> None:
        try:
            await self._client.remove_all_channels()
        finally:
            if self._http_client is not None:
                await self._http_client.aclose()


@asynccontextmanager
async def open_gateway(access_token: str | None = None) -> AsyncIterator[SupabaseGateway]:
    """Yield a gateway and release its realtime channels afterwards.

    Usage::

        async with open_gateway(user.access_token) as gateway:
            ...
    """
    gateway = await SupabaseGateway.create(access_token)
    try:
        yield gateway
    finally:
        await gateway.close()
