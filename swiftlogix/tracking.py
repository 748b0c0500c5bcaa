"""
Shipment tracking lookup.

Resolution is two-phase: verify_tracking_number returns the shipment plus an
opaque session token, and get_shipment_events reads the history with that
token instead of a raw shipment id.

Events are kept in ascending occurrence order (oldest first). Events that
arrive over the realtime feed are merged into that order, and the cached
shipment status follows the newest event.
"""

import logging
from typing import Callable, Optional

from pydantic import ValidationError as SchemaError

from swiftlogix.backend import (
    Backend,
    EVENTS_TABLE,
    RPC_GET_SHIPMENT_EVENTS,
    RPC_VERIFY_TRACKING_NUMBER,
    SHIPMENTS_TABLE,
)
from swiftlogix.errors import BackendError, NotFoundError
from swiftlogix.metrics import record_tracking_lookup
from swiftlogix.realtime import ChangeEvent, Subscription
from swiftlogix.schemas import Shipment, ShipmentEvent, TrackingResponse
from swiftlogix.utils import looks_like_tracking_number, normalize_tracking_number

logger = logging.getLogger(__name__)


EMPTY_TRACKING_NUMBER = "Please enter a tracking number"
NOT_FOUND_MESSAGE = "No shipment found with this tracking number. Please check and try again."
GENERIC_ERROR_MESSAGE = "An error occurred while tracking. Please try again."


def sort_events(events: list[ShipmentEvent]) -> list[ShipmentEvent]:
    """Oldest first; ties keep arrival order."""
    return sorted(events, key=lambda event: event.occurred_at)


async def read_events(backend: Backend, session_token: Optional[str]) -> list[ShipmentEvent]:
    """
    Events of the shipment a tracking session token was issued for.

    Raises:
        NotFoundError: the token is unknown or expired
        BackendError: the call failed
    """
    response = await backend.rpc(RPC_GET_SHIPMENT_EVENTS, {"p_session_token": session_token}) or {}
    if not response.get("success"):
        raise NotFoundError(response.get("error") or NOT_FOUND_MESSAGE)
    return sort_events([ShipmentEvent.model_validate(event) for event in response.get("events") or []])


class TrackingLookup:
    """
    Tracking state for one viewer.

    Failures never raise: `error` holds the user-facing message and `result`
    stays None. Live updates are opt-in via subscribe() and must be released
    with reset() or close(), or by using the lookup as an async context manager.
    """

    def __init__(self, backend: Backend):
        self._backend = backend
        self.is_loading = False
        self.error: Optional[str] = None
        self.result: Optional[TrackingResponse] = None
        self.last_outcome: Optional[str] = None
        self._subscriptions: list[Subscription] = []
        self._on_change: Optional[Callable[[TrackingResponse], None]] = None

    # -- lookup ---------------------------------------------------------------

    async def track(self, number: str) -> Optional[TrackingResponse]:
        await self.reset()

        tracking_number = normalize_tracking_number(number)
        if not tracking_number:
            self.error = EMPTY_TRACKING_NUMBER
            self._finish("invalid")
            return None
        if not looks_like_tracking_number(tracking_number):
            self.error = NOT_FOUND_MESSAGE
            self._finish("invalid")
            return None

        self.is_loading = True
        try:
            verified = await self._backend.rpc(
                RPC_VERIFY_TRACKING_NUMBER, {"p_tracking_number": tracking_number}
            ) or {}
            if not verified.get("success"):
                self.error = verified.get("error") or NOT_FOUND_MESSAGE
                self._finish("not_found")
                return None

            session_token = verified.get("session_token")
            events = await self._fetch_events(session_token)
            self.result = TrackingResponse(
                shipment=Shipment.model_validate(verified["shipment"]),
                events=events,
                session_token=session_token,
            )
        except (BackendError, KeyError, SchemaError) as e:
            logger.error(f"Tracking error for {tracking_number}: {e}")
            self.error = GENERIC_ERROR_MESSAGE
            self._finish("error")
            return None
        finally:
            self.is_loading = False

        logger.info(f"Tracked {tracking_number}: {len(self.result.events)} events")
        self._finish("found")
        return self.result

    def _finish(self, outcome: str) -> None:
        self.last_outcome = outcome
        record_tracking_lookup(outcome)

    async def _fetch_events(self, session_token: Optional[str]) -> list[ShipmentEvent]:
        try:
            return await read_events(self._backend, session_token)
        except NotFoundError as e:
            logger.warning(f"Event read refused: {e.message}")
            return []

    async def refresh_events(self) -> None:
        """Re-read events with the stored session token. Errors are logged only."""
        if self.result is None or not self.result.session_token:
            return
        try:
            self.result.events = await read_events(self._backend, self.result.session_token)
        except (BackendError, NotFoundError) as e:
            logger.error(f"Error refreshing events: {e}")

    # -- live updates ---------------------------------------------------------

    @property
    def is_live(self) -> bool:
        return any(not subscription.closed for subscription in self._subscriptions)

    async def subscribe(self, on_change: Optional[Callable[[TrackingResponse], None]] = None) -> None:
        """
        Follow the resolved shipment: new events and shipment row updates.

        on_change is called with the updated result after each applied change.
        """
        if self.result is None:
            raise RuntimeError("subscribe() requires a successful track()")
        if self.is_live:
            return

        self._on_change = on_change
        shipment_id = self.result.shipment.id
        try:
            self._subscriptions.append(
                await self._backend.subscribe(EVENTS_TABLE, "shipment_id", shipment_id, self._apply_change)
            )
            self._subscriptions.append(
                await self._backend.subscribe(SHIPMENTS_TABLE, "id", shipment_id, self._apply_change)
            )
        except BackendError:
            await self._close_subscriptions()
            raise

    def _apply_change(self, change: ChangeEvent) -> None:
        if self.result is None:
            return

        try:
            self._merge_change(change)
        except SchemaError as e:
            logger.warning(f"Skipping malformed {change.type} on {change.table}: {e}")

    def _merge_change(self, change: ChangeEvent) -> None:
        if change.table == EVENTS_TABLE and change.type == "INSERT":
            event = ShipmentEvent.model_validate(change.record)
            if any(existing.id == event.id for existing in self.result.events):
                return
            self.result.events = sort_events(self.result.events + [event])
            newest = self.result.events[-1]
            if newest.status != self.result.shipment.status:
                self.result.shipment = self.result.shipment.model_copy(update={"status": newest.status})
        elif change.table == SHIPMENTS_TABLE and change.type == "UPDATE":
            self.result.shipment = Shipment.model_validate(
                {**self.result.shipment.model_dump(), **change.record}
            )
        else:
            return

        logger.debug(f"Applied {change.type} on {change.table} to tracking view")
        if self._on_change is not None:
            self._on_change(self.result)

    async def _close_subscriptions(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.close()

    # -- lifecycle ------------------------------------------------------------

    async def reset(self) -> None:
        """Drop the current result and release any live subscription."""
        await self._close_subscriptions()
        self._on_change = None
        self.result = None
        self.error = None
        self.last_outcome = None

    async def close(self) -> None:
        await self._close_subscriptions()

    async def __aenter__(self) -> "TrackingLookup":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
