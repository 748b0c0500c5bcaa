"""
Hosted backend reached through the Supabase async client.
"""

import logging
from typing import Any, Optional

import httpx
from postgrest import APIError
from supabase import AsyncClient, AuthError, acreate_client

from swiftlogix.backend import AuthSession, AuthUser, Backend
from swiftlogix.errors import BackendError
from swiftlogix.realtime import ChangeCallback, ChangeEvent, Subscription

logger = logging.getLogger(__name__)


def _to_change_event(table: str, payload: dict) -> ChangeEvent:
    """
    Normalise a postgres_changes payload. Depending on the realtime client
    version the row sits under data.record or directly under new/record.
    """
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    record = data.get("record") or data.get("new") or {}
    change_type = data.get("type") or data.get("eventType") or ""
    return ChangeEvent(table=table, type=str(change_type).upper(), record=dict(record))


def _session_from_response(response) -> AuthSession:
    session = getattr(response, "session", None)
    user = getattr(response, "user", None) or getattr(session, "user", None)
    if session is None or user is None:
        # sign_up with email confirmation enabled returns no session
        raise BackendError("Check your email to confirm your account before signing in")
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user=AuthUser(id=str(user.id), email=user.email),
    )


class SupabaseBackend(Backend):
    """Backend implementation over the Supabase hosted API."""

    def __init__(self, url: Optional[str], key: Optional[str]):
        self._url = url
        self._key = key
        self._client: Optional[AsyncClient] = None

    async def _get_client(self) -> AsyncClient:
        if self._client is not None:
            return self._client
        if not self._url or not self._key:
            raise BackendError("SUPABASE_URL and SUPABASE_KEY must be configured")
        self._client = await acreate_client(self._url, self._key)
        return self._client

    async def _execute(self, description: str, query) -> Any:
        try:
            response = await query.execute()
        except APIError as e:
            logger.error(f"{description} failed: {e.message}")
            raise BackendError(f"{description} failed") from e
        except httpx.HTTPError as e:
            logger.error(f"{description} transport error: {e}")
            raise BackendError(f"{description} failed") from e
        return response.data

    # -- tables ---------------------------------------------------------------

    async def select(
        self,
        table: str,
        eq: Optional[dict] = None,
        order: Optional[str] = None,
        ascending: bool = True,
    ) -> list[dict]:
        client = await self._get_client()
        query = client.table(table).select("*")
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        if order:
            query = query.order(order, desc=not ascending)
        return await self._execute(f"select {table}", query) or []

    async def insert(self, table: str, row: dict) -> dict:
        client = await self._get_client()
        data = await self._execute(f"insert {table}", client.table(table).insert(row))
        if not data:
            raise BackendError(f"insert {table} returned no row")
        return data[0]

    async def update(self, table: str, values: dict, eq: dict) -> list[dict]:
        if not eq:
            raise BackendError("update requires at least one filter")
        client = await self._get_client()
        query = client.table(table).update(values)
        for column, value in eq.items():
            query = query.eq(column, value)
        return await self._execute(f"update {table}", query) or []

    # -- remote procedures ----------------------------------------------------

    async def rpc(self, name: str, params: dict) -> Any:
        client = await self._get_client()
        return await self._execute(f"rpc {name}", client.rpc(name, params))

    # -- realtime -------------------------------------------------------------

    async def subscribe(
        self,
        table: str,
        column: str,
        value: Any,
        callback: ChangeCallback,
    ) -> Subscription:
        client = await self._get_client()
        channel = client.channel(f"{table}-{column}-{value}")

        def on_change(payload: dict) -> None:
            callback(_to_change_event(table, payload))

        channel.on_postgres_changes(
            "*",
            schema="public",
            table=table,
            filter=f"{column}=eq.{value}",
            callback=on_change,
        )
        try:
            await channel.subscribe()
        except Exception as e:
            logger.error(f"Realtime subscribe to {table} failed: {e}")
            raise BackendError("Realtime subscription failed") from e

        async def remove() -> None:
            await client.remove_channel(channel)

        return Subscription(f"{table}:{column}=eq.{value}", remove)

    # -- auth -----------------------------------------------------------------

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        if not access_token:
            return None
        client = await self._get_client()
        try:
            response = await client.auth.get_user(access_token)
        except AuthError as e:
            logger.info(f"Access token rejected: {e}")
            return None
        except httpx.HTTPError as e:
            logger.error(f"Session lookup transport error: {e}")
            raise BackendError("Session lookup failed") from e
        if response is None or response.user is None:
            return None
        return AuthUser(id=str(response.user.id), email=response.user.email)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        client = await self._get_client()
        try:
            response = await client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            raise BackendError(e.message) from e
        except httpx.HTTPError as e:
            logger.error(f"Sign-in transport error: {e}")
            raise BackendError("Sign-in failed. Please try again.") from e
        return _session_from_response(response)

    async def sign_up(self, email: str, password: str) -> AuthSession:
        client = await self._get_client()
        try:
            response = await client.auth.sign_up({"email": email, "password": password})
        except AuthError as e:
            raise BackendError(e.message) from e
        except httpx.HTTPError as e:
            logger.error(f"Sign-up transport error: {e}")
            raise BackendError("Sign-up failed. Please try again.") from e
        return _session_from_response(response)

    async def sign_out(self, access_token: str) -> None:
        client = await self._get_client()
        try:
            await client.auth.admin.sign_out(access_token)
        except AuthError as e:
            logger.warning(f"Sign-out failed: {e}")
        except httpx.HTTPError as e:
            logger.error(f"Sign-out transport error: {e}")
            raise BackendError("Sign-out failed") from e

    # -- health ---------------------------------------------------------------

    def check_health(self) -> tuple[bool, Optional[str]]:
        if not self._url or not self._key:
            return False, "SUPABASE_URL or SUPABASE_KEY not configured"
        return True, None
