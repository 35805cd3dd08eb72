"""
Tests for the EventBus and ConnectivityBroadcaster.
"""
import asyncio

import pytest

from chankura_gateway.core.connectivity import ConnectivityBroadcaster
from chankura_gateway.core.event_bus import Event, EventBus, EventType
from chankura_gateway.core.models import ConnectivityStatus


class TestEventBus:
    @pytest.mark.asyncio
    async def test_fan_out_to_every_subscriber(self):
        bus = EventBus()
        a, b = [], []
        bus.subscribe(EventType.POSITION, lambda e: a.append(e.payload))
        bus.subscribe(EventType.POSITION, lambda e: b.append(e.payload))

        await bus.emit(EventType.POSITION, "snap", source="test")
        await bus.drain()

        assert a == ["snap"] and b == ["snap"]

    @pytest.mark.asyncio
    async def test_order_preserved_within_channel(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.MARKET_TRADE, lambda e: seen.append(e.payload))
        for i in range(10):
            bus.emit_sync(EventType.MARKET_TRADE, i)
        await bus.drain()
        assert seen == list(range(10))

    @pytest.mark.asyncio
    async def test_priority_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.ORDER_STATUS, lambda e: seen.append("low"), priority=0)
        bus.subscribe(EventType.ORDER_STATUS, lambda e: seen.append("high"), priority=10)
        await bus.emit(EventType.ORDER_STATUS, None)
        await bus.drain()
        assert seen == ["high", "low"]

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        async def fine(event):
            seen.append(event.payload)

        bus.subscribe(EventType.MARKET_DATA, broken, priority=5, name="broken")
        bus.subscribe(EventType.MARKET_DATA, fine)
        await bus.emit(EventType.MARKET_DATA, "book")
        await bus.drain()

        assert seen == ["book"]
        assert bus.get_stats()["handler_errors"] == 1

    @pytest.mark.asyncio
    async def test_filter_and_unsubscribe(self):
        bus = EventBus()
        seen = []
        sub = bus.subscribe(EventType.POSITION, lambda e: seen.append(e.payload),
                            filter_fn=lambda e: e.source == "wanted")
        await bus.emit(EventType.POSITION, 1, source="other")
        await bus.emit(EventType.POSITION, 2, source="wanted")
        await bus.drain()
        assert seen == [2]

        assert bus.unsubscribe(EventType.POSITION, sub)
        assert bus.get_subscriber_count(EventType.POSITION) == 0
        assert not bus.unsubscribe(EventType.POSITION, sub)

    @pytest.mark.asyncio
    async def test_bounded_queue_drops(self):
        bus = EventBus(queue_size=1)
        assert bus.publish_sync(Event(EventType.POSITION, 1))
        assert not bus.publish_sync(Event(EventType.POSITION, 2))
        assert bus.get_stats()["events_dropped"] == 1

    @pytest.mark.asyncio
    async def test_background_delivery(self):
        bus = EventBus()
        got = asyncio.Event()
        bus.subscribe(EventType.CONNECTIVITY, lambda e: got.set())
        task = asyncio.create_task(bus.start())
        await bus.emit(EventType.CONNECTIVITY, ConnectivityStatus.CONNECTED)
        await asyncio.wait_for(got.wait(), timeout=2.0)
        assert bus.is_running
        bus.stop()
        await asyncio.wait_for(task, timeout=3.0)
        assert not bus.is_running

    @pytest.mark.asyncio
    async def test_history_limited(self):
        bus = EventBus(history_size=3)
        for i in range(5):
            bus.emit_sync(EventType.MARKET_TRADE, i)
        await bus.drain()
        assert [e.payload for e in bus.get_history()] == [2, 3, 4]


class TestConnectivityBroadcaster:
    def test_status_starts_unknown(self):
        assert ConnectivityBroadcaster().status is None

    def test_trigger_reaches_every_listener(self):
        conn = ConnectivityBroadcaster()
        a, b = [], []
        conn.on(a.append)
        conn.on(b.append)
        conn.trigger(ConnectivityStatus.CONNECTED)
        conn.trigger(ConnectivityStatus.DISCONNECTED)
        assert a == b == [ConnectivityStatus.CONNECTED, ConnectivityStatus.DISCONNECTED]
        assert conn.status == ConnectivityStatus.DISCONNECTED

    def test_late_listener_gets_current_status(self):
        conn = ConnectivityBroadcaster()
        conn.trigger(ConnectivityStatus.CONNECTED)
        seen = []
        conn.on(seen.append)
        assert seen == [ConnectivityStatus.CONNECTED]

    def test_listener_error_isolated(self):
        conn = ConnectivityBroadcaster()
        seen = []

        def broken(status):
            raise RuntimeError("boom")

        conn.on(broken)
        conn.on(seen.append)
        conn.trigger(ConnectivityStatus.CONNECTED)
        assert seen == [ConnectivityStatus.CONNECTED]

    def test_off(self):
        conn = ConnectivityBroadcaster()
        seen = []
        conn.on(seen.append)
        conn.off(seen.append)
        conn.trigger(ConnectivityStatus.CONNECTED)
        assert seen == []
