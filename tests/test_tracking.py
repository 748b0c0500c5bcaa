"""
Tests for tracking lookups, live updates and the tracking endpoints.

Tests cover:
- Two-phase resolution (verify, then read events with the session token)
- Not found, empty and malformed input
- Event ordering and realtime merge
- Subscription release
- POST /api/tracking, GET /api/tracking/{token}/events, WS /ws/tracking
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from swiftlogix.admin import AdminService
from swiftlogix.backend import EVENTS_TABLE, SHIPMENTS_TABLE
from swiftlogix.errors import BackendError, NotFoundError
from swiftlogix.models import TrackingSession
from swiftlogix.realtime import ChangeEvent
from swiftlogix.storage import SessionLocal
from swiftlogix.tracking import (
    EMPTY_TRACKING_NUMBER,
    GENERIC_ERROR_MESSAGE,
    NOT_FOUND_MESSAGE,
    TrackingLookup,
    read_events,
)


class TestLookup:
    """Test TrackingLookup.track()."""

    def test_found(self, backend, shipment):
        async def scenario():
            async with TrackingLookup(backend) as lookup:
                result = await lookup.track(f"  {shipment['tracking_number'].lower()} ")
                return lookup, result

        lookup, result = asyncio.run(scenario())

        assert lookup.last_outcome == "found"
        assert lookup.error is None
        assert lookup.is_loading is False
        assert result.shipment.tracking_number == shipment["tracking_number"]
        assert result.shipment.status == "pending"
        assert result.session_token
        assert [event.status for event in result.events] == ["pending"]
        assert result.events[0].location == "Shanghai, China"

    def test_not_found(self, backend):
        lookup = TrackingLookup(backend)

        result = asyncio.run(lookup.track("SWL-2026-0118-0000"))

        assert result is None
        assert lookup.error == NOT_FOUND_MESSAGE
        assert lookup.last_outcome == "not_found"

    def test_empty_input(self, backend):
        lookup = TrackingLookup(backend)

        assert asyncio.run(lookup.track("   ")) is None
        assert lookup.error == EMPTY_TRACKING_NUMBER
        assert lookup.last_outcome == "invalid"

    @pytest.mark.parametrize("number", ["SWL 2026 0118", "<script>", "X" * 41])
    def test_malformed_input_skips_backend(self, number):
        backend = AsyncMock()
        lookup = TrackingLookup(backend)

        assert asyncio.run(lookup.track(number)) is None
        assert lookup.error == NOT_FOUND_MESSAGE
        backend.rpc.assert_not_awaited()

    def test_backend_failure(self):
        backend = AsyncMock()
        backend.rpc.side_effect = BackendError("connection refused")
        lookup = TrackingLookup(backend)

        assert asyncio.run(lookup.track("SWL-2026-0118-7890")) is None
        assert lookup.error == GENERIC_ERROR_MESSAGE
        assert lookup.last_outcome == "error"
        assert lookup.is_loading is False

    def test_events_oldest_first(self, backend, shipment):
        async def scenario():
            await backend.insert(EVENTS_TABLE, {
                "shipment_id": shipment["shipment_id"],
                "status": "processing",
                "location": "Shanghai, China",
                "occurred_at": "2020-01-01T00:00:00.000000Z",
            })
            await AdminService(backend).append_event(shipment["shipment_id"], "in_transit", "Singapore")
            return await TrackingLookup(backend).track(shipment["tracking_number"])

        result = asyncio.run(scenario())

        assert [event.status for event in result.events] == ["processing", "pending", "in_transit"]
        assert result.shipment.status == "in_transit"


class TestReadEvents:
    """Test event reads scoped by tracking session token."""

    def test_refresh_picks_up_new_events(self, backend, shipment):
        async def scenario():
            lookup = TrackingLookup(backend)
            await lookup.track(shipment["tracking_number"])
            await AdminService(backend).append_event(shipment["shipment_id"], "picked_up", "Shanghai, China")
            before = len(lookup.result.events)
            await lookup.refresh_events()
            return before, lookup.result

        before, result = asyncio.run(scenario())

        assert before == 1
        assert [event.status for event in result.events] == ["pending", "picked_up"]

    def test_refresh_failure_keeps_events(self, backend, shipment):
        async def scenario():
            lookup = TrackingLookup(backend)
            await lookup.track(shipment["tracking_number"])
            lookup.result.session_token = "revoked"
            await lookup.refresh_events()
            return lookup.result

        assert len(asyncio.run(scenario()).events) == 1

    def test_unknown_token(self, backend):
        with pytest.raises(NotFoundError):
            asyncio.run(read_events(backend, "made-up-token"))

    def test_missing_token(self, backend):
        with pytest.raises(NotFoundError):
            asyncio.run(read_events(backend, None))

    def test_expired_token(self, backend, shipment):
        result = asyncio.run(TrackingLookup(backend).track(shipment["tracking_number"]))

        with SessionLocal() as db:
            session = db.get(TrackingSession, result.session_token)
            session.expires_at = "2000-01-01T00:00:00.000000Z"
            db.commit()

        with pytest.raises(NotFoundError):
            asyncio.run(read_events(backend, result.session_token))


class TestLiveUpdates:
    """Test TrackingLookup.subscribe() and subscription release."""

    def test_new_event_is_merged_and_status_follows(self, backend, shipment):
        updates = []

        async def scenario():
            async with TrackingLookup(backend) as lookup:
                await lookup.track(shipment["tracking_number"])
                await lookup.subscribe(on_change=lambda result: updates.append(result.shipment.status))
                await AdminService(backend).append_event(
                    shipment["shipment_id"], "in_transit", "Singapore", "Departed transshipment hub"
                )
                return lookup.result

        result = asyncio.run(scenario())

        assert [event.status for event in result.events] == ["pending", "in_transit"]
        assert result.events[-1].description == "Departed transshipment hub"
        assert result.shipment.status == "in_transit"
        assert updates and updates[-1] == "in_transit"

    def test_duplicate_and_late_events(self, backend, shipment):
        async def scenario():
            async with TrackingLookup(backend) as lookup:
                result = await lookup.track(shipment["tracking_number"])
                await lookup.subscribe()
                existing = result.events[0].model_dump()

                backend.hub.publish(EVENTS_TABLE, "INSERT", {**existing, "shipment_id": shipment["shipment_id"]})
                backend.hub.publish(EVENTS_TABLE, "INSERT", {
                    "id": "late-event",
                    "shipment_id": shipment["shipment_id"],
                    "status": "processing",
                    "location": "Shanghai, China",
                    "occurred_at": "2020-01-01T00:00:00.000000Z",
                })
                return lookup.result

        result = asyncio.run(scenario())

        assert [event.id for event in result.events][0] == "late-event"
        assert len(result.events) == 2
        # The newest event is still the pending one
        assert result.shipment.status == "pending"

    def test_shipment_update_is_merged(self, backend, shipment):
        async def scenario():
            async with TrackingLookup(backend) as lookup:
                await lookup.track(shipment["tracking_number"])
                await lookup.subscribe()
                await AdminService(backend).set_status(shipment["shipment_id"], "processing")
                return lookup.result

        result = asyncio.run(scenario())

        assert result.shipment.status == "processing"

    def test_other_shipments_are_ignored(self, backend, shipment):
        async def scenario():
            async with TrackingLookup(backend) as lookup:
                await lookup.track(shipment["tracking_number"])
                await lookup.subscribe()
                backend.hub.publish(EVENTS_TABLE, "INSERT", {
                    "id": "elsewhere",
                    "shipment_id": "another-shipment",
                    "status": "delivered",
                    "location": "Berlin, Germany",
                    "occurred_at": "2030-01-01T00:00:00.000000Z",
                })
                return lookup.result

        result = asyncio.run(scenario())

        assert len(result.events) == 1
        assert result.shipment.status == "pending"

    def test_malformed_change_is_skipped(self, backend, shipment):
        async def scenario():
            lookup = TrackingLookup(backend)
            await lookup.track(shipment["tracking_number"])
            return lookup

        lookup = asyncio.run(scenario())

        lookup._apply_change(ChangeEvent(EVENTS_TABLE, "INSERT", {"id": "no-status", "location": "Singapore"}))
        lookup._apply_change(ChangeEvent(SHIPMENTS_TABLE, "UPDATE", {"status": None}))

        assert [event.status for event in lookup.result.events] == ["pending"]
        assert lookup.result.shipment.status == "pending"

    def test_subscribe_requires_result(self, backend):
        with pytest.raises(RuntimeError):
            asyncio.run(TrackingLookup(backend).subscribe())

    def test_reset_releases_subscriptions(self, backend, shipment):
        baseline = backend.hub.listener_count()

        async def scenario():
            lookup = TrackingLookup(backend)
            await lookup.track(shipment["tracking_number"])
            await lookup.subscribe()
            opened = backend.hub.listener_count()
            live = lookup.is_live
            await lookup.reset()
            return opened, live, lookup

        opened, live, lookup = asyncio.run(scenario())

        # One feed for new events, one for shipment row updates
        assert opened == baseline + 2
        assert live is True
        assert lookup.is_live is False
        assert lookup.result is None
        assert backend.hub.listener_count() == baseline

    def test_new_track_releases_previous_subscription(self, backend, shipment):
        baseline = backend.hub.listener_count()

        async def scenario():
            async with TrackingLookup(backend) as lookup:
                await lookup.track(shipment["tracking_number"])
                await lookup.subscribe()
                await lookup.track("SWL-2026-0118-0000")
                return backend.hub.listener_count()

        assert asyncio.run(scenario()) == baseline

    def test_context_manager_releases_subscriptions(self, backend, shipment):
        baseline = backend.hub.listener_count()

        async def scenario():
            async with TrackingLookup(backend) as lookup:
                await lookup.track(shipment["tracking_number"])
                await lookup.subscribe()

        asyncio.run(scenario())

        assert backend.hub.listener_count() == baseline


class TestTrackingEndpoints:
    """Test the HTTP and websocket tracking endpoints."""

    def test_track_found(self, client, shipment):
        response = client.post("/api/tracking", json={"tracking_number": shipment["tracking_number"]})

        assert response.status_code == 200
        data = response.json()
        assert data["shipment"]["tracking_number"] == shipment["tracking_number"]
        assert len(data["events"]) == 1
        assert data["session_token"]

    def test_track_not_found(self, client):
        response = client.post("/api/tracking", json={"tracking_number": "SWL-2026-0118-0000"})

        assert response.status_code == 404
        assert response.json()["detail"] == NOT_FOUND_MESSAGE

    def test_track_malformed(self, client):
        response = client.post("/api/tracking", json={"tracking_number": "drop table;"})

        assert response.status_code == 404
        assert response.json()["detail"] == NOT_FOUND_MESSAGE

    def test_track_empty(self, client):
        response = client.post("/api/tracking", json={"tracking_number": "  "})

        assert response.status_code == 400
        assert response.json()["detail"] == EMPTY_TRACKING_NUMBER

    def test_events_by_session_token(self, client, shipment):
        token = client.post(
            "/api/tracking", json={"tracking_number": shipment["tracking_number"]}
        ).json()["session_token"]

        response = client.get(f"/api/tracking/{token}/events")

        assert response.status_code == 200
        assert [event["status"] for event in response.json()["events"]] == ["pending"]

    def test_events_with_unknown_token(self, client):
        response = client.get("/api/tracking/not-a-token/events")
        assert response.status_code == 404

    def test_websocket_snapshot(self, client, shipment):
        with client.websocket_connect(f"/ws/tracking?number={shipment['tracking_number']}") as websocket:
            data = websocket.receive_json()

        assert data["type"] == "snapshot"
        assert data["shipment"]["tracking_number"] == shipment["tracking_number"]
        assert [event["status"] for event in data["events"]] == ["pending"]

    def test_websocket_not_found(self, client):
        with client.websocket_connect("/ws/tracking?number=SWL-2026-0118-0000") as websocket:
            data = websocket.receive_json()

        assert data == {"type": "error", "detail": NOT_FOUND_MESSAGE}
