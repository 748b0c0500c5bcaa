"""
Interface to the hosted backend.

Everything the site persists, every auth decision and every realtime feed
goes through a Backend. Two implementations exist:

- SupabaseBackend (swiftlogix.supabase_backend): the hosted Postgres API.
- LocalBackend (swiftlogix.storage): SQLAlchemy stand-in for development and tests.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from swiftlogix.config import get_settings
from swiftlogix.realtime import ChangeCallback, Subscription

logger = logging.getLogger(__name__)


# Table names
ORDERS_TABLE = "shipping_orders"
SHIPMENTS_TABLE = "shipments"
EVENTS_TABLE = "shipment_events"
CHAT_TABLE = "chat_messages"

# Remote procedure names
RPC_HAS_ROLE = "has_role"
RPC_VERIFY_TRACKING_NUMBER = "verify_tracking_number"
RPC_GET_SHIPMENT_EVENTS = "get_shipment_events"
RPC_CREATE_SHIPMENT_FROM_ORDER = "create_shipment_from_order"


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None


class Backend(ABC):
    """Table CRUD, remote procedures, realtime feeds and auth."""

    # -- tables ---------------------------------------------------------------

    @abstractmethod
    async def select(
        self,
        table: str,
        eq: Optional[dict] = None,
        order: Optional[str] = None,
        ascending: bool = True,
    ) -> list[dict]:
        """Rows of `table` matching every column equality in `eq`, optionally ordered."""

    @abstractmethod
    async def insert(self, table: str, row: dict) -> dict:
        """Insert one row and return it as stored (with backend-assigned id and timestamps)."""

    @abstractmethod
    async def update(self, table: str, values: dict, eq: dict) -> list[dict]:
        """Update matching rows and return them."""

    # -- remote procedures ----------------------------------------------------

    @abstractmethod
    async def rpc(self, name: str, params: dict) -> Any:
        """Invoke a remote procedure and return its decoded result."""

    # -- realtime -------------------------------------------------------------

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        column: str,
        value: Any,
        callback: ChangeCallback,
    ) -> Subscription:
        """Open a change feed for rows of `table` where `column` equals `value`."""

    # -- auth -----------------------------------------------------------------

    @abstractmethod
    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        """Resolve an access token to its user, or None when invalid or expired."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthSession:
        ...

    @abstractmethod
    async def sign_out(self, access_token: str) -> None:
        ...

    # -- health ---------------------------------------------------------------

    @abstractmethod
    def check_health(self) -> tuple[bool, Optional[str]]:
        """Return (ready, reason_if_not_ready)."""


@lru_cache()
def get_backend() -> Backend:
    """
    Build the configured backend once per process.
    Used as a FastAPI dependency; tests may override it.
    """
    settings = get_settings()
    backend_name = settings.BACKEND.lower()
    logger.info(f"Using {backend_name} backend")

    if backend_name == "supabase":
        from swiftlogix.supabase_backend import SupabaseBackend
        return SupabaseBackend(
            url=settings.SUPABASE_URL,
            key=settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_KEY,
        )

    if backend_name == "local":
        from swiftlogix.storage import LocalBackend
        return LocalBackend()

    raise ValueError(f"Unknown BACKEND setting: {settings.BACKEND!r}")
