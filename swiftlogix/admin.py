"""
Operator panel: list shipments, move their status, append tracking events.

Appending an event is two writes (event insert, then shipment status update),
not a transaction. The shipment status tracks the latest event only as long
as every status change goes through append_event.
"""

import logging
from typing import Optional

from swiftlogix.backend import Backend, EVENTS_TABLE, SHIPMENTS_TABLE
from swiftlogix.errors import NotFoundError, ValidationError
from swiftlogix.schemas import Shipment, ShipmentEvent
from swiftlogix.utils import utc_now_iso

logger = logging.getLogger(__name__)


SHIPMENT_STATUSES = (
    "pending",
    "processing",
    "picked_up",
    "in_transit",
    "out_for_delivery",
    "delivered",
)


def validate_status(status: str) -> str:
    if status not in SHIPMENT_STATUSES:
        raise ValidationError(f"Unknown status: {status}")
    return status


def matches(shipment: Shipment, query: str) -> bool:
    needle = query.lower()
    haystack = (
        shipment.tracking_number,
        shipment.sender_name or "",
        shipment.recipient_name or "",
        shipment.destination_city,
    )
    return any(needle in value.lower() for value in haystack)


class AdminService:
    def __init__(self, backend: Backend):
        self._backend = backend

    async def list_shipments(self, query: Optional[str] = None) -> list[Shipment]:
        rows = await self._backend.select(SHIPMENTS_TABLE, order="created_at", ascending=False)
        shipments = [Shipment.model_validate(row) for row in rows]
        if query:
            shipments = [shipment for shipment in shipments if matches(shipment, query)]
        return shipments

    async def get_shipment(self, shipment_id: str) -> Shipment:
        rows = await self._backend.select(SHIPMENTS_TABLE, eq={"id": shipment_id})
        if not rows:
            raise NotFoundError("Shipment not found")
        return Shipment.model_validate(rows[0])

    async def list_events(self, shipment_id: str) -> list[ShipmentEvent]:
        rows = await self._backend.select(
            EVENTS_TABLE, eq={"shipment_id": shipment_id}, order="occurred_at", ascending=True
        )
        return [ShipmentEvent.model_validate(row) for row in rows]

    async def set_status(self, shipment_id: str, status: str) -> Shipment:
        validate_status(status)
        rows = await self._backend.update(SHIPMENTS_TABLE, {"status": status}, eq={"id": shipment_id})
        if not rows:
            raise NotFoundError("Shipment not found")
        logger.info(f"Shipment {shipment_id} status set to {status}")
        return Shipment.model_validate(rows[0])

    async def append_event(
        self,
        shipment_id: str,
        status: str,
        location: str,
        description: Optional[str] = None,
    ) -> ShipmentEvent:
        """
        Record a tracking event stamped now and move the shipment to its status.

        Raises:
            ValidationError: blank location or unknown status (nothing sent)
            NotFoundError: no such shipment
            BackendError: either write failed
        """
        location = (location or "").strip()
        if not location:
            raise ValidationError("Location is required")
        validate_status(status)

        await self.get_shipment(shipment_id)
        row = await self._backend.insert(EVENTS_TABLE, {
            "shipment_id": shipment_id,
            "status": status,
            "location": location,
            "description": (description or "").strip() or None,
            "occurred_at": utc_now_iso(),
        })
        logger.info(f"Tracking event added to {shipment_id}: {status} at {location}")

        await self.set_status(shipment_id, status)
        return ShipmentEvent.model_validate(row)
