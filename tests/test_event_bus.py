"""
PURPOSE: Tests for the event bus and WebSocket fan-out.
"""

import pytest

from tvscanner.api.routes_ws import ConnectionManager, setup_ws_event_handlers
from tvscanner.events.bus import EventBus, get_event_bus, set_event_bus
from tvscanner.events.types import EventPayload


class FakeSocket:
    """WebSocket stand-in capturing sent JSON."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


class TestEventBus:
    """Test local delivery."""

    @pytest.mark.asyncio
    async def test_handlers_receive_payload(self):
        bus = EventBus()
        received = []

        async def handler(event: EventPayload):
            received.append(event)

        bus.on("alertsUpdate", handler)
        payload = await bus.publish("alertsUpdate", [{"Ticker": "NVDA"}], source="test")

        assert received == [payload]
        assert payload.to_message() == {"event": "alertsUpdate", "data": [{"Ticker": "NVDA"}]}

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_propagate(self):
        bus = EventBus()
        received = []

        async def broken(event):
            raise RuntimeError("boom")

        async def healthy(event):
            received.append(event.event_type)

        bus.on("pivotUpdate", broken)
        bus.on("pivotUpdate", healthy)
        await bus.publish("pivotUpdate", [])
        assert received == ["pivotUpdate"]

    @pytest.mark.asyncio
    async def test_off_removes_handler(self):
        bus = EventBus()

        async def handler(event):
            pass

        bus.on("alertsUpdate", handler)
        bus.off("alertsUpdate", handler)
        assert bus.handler_count("alertsUpdate") == 0

    @pytest.mark.asyncio
    async def test_connect_without_url_is_local_only(self):
        bus = EventBus("")
        await bus.connect()
        assert bus._redis is None
        await bus.disconnect()

    def test_global_bus_override(self):
        bus = EventBus()
        set_event_bus(bus)
        try:
            assert get_event_bus() is bus
        finally:
            set_event_bus(None)


class TestConnectionManager:
    """Test the WebSocket fan-out."""

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_client(self):
        bus = EventBus()
        manager = ConnectionManager()
        first, second = FakeSocket(), FakeSocket()
        manager.add(first)
        manager.add(second)
        await setup_ws_event_handlers(bus, manager)

        await bus.publish("alertsUpdate", [{"Ticker": "NVDA"}])
        await bus.publish("pivotUpdate", [])
        await bus.publish("priceUpdate", {"NVDA": {"Price": 101.0}})

        expected = [
            {"event": "alertsUpdate", "data": [{"Ticker": "NVDA"}]},
            {"event": "pivotUpdate", "data": []},
            {"event": "priceUpdate", "data": {"NVDA": {"Price": 101.0}}},
        ]
        assert first.sent == expected
        assert second.sent == expected

    @pytest.mark.asyncio
    async def test_failed_client_dropped(self):
        manager = ConnectionManager()
        healthy, dead = FakeSocket(), FakeSocket(fail=True)
        manager.add(healthy)
        manager.add(dead)

        await manager.broadcast_event(EventPayload(event_type="pivotUpdate", source="test", data=[]))

        assert len(manager) == 1
        assert healthy.sent == [{"event": "pivotUpdate", "data": []}]
