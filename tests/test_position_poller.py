"""
Tests for PositionPoller.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from chankura_gateway.core.connectivity import ConnectivityBroadcaster
from chankura_gateway.core.event_bus import EventType
from chankura_gateway.infra.transport import TransportError
from chankura_gateway.monitoring.metrics import ConnectorMetrics
from chankura_gateway.position_poller import PositionPoller, PositionPollerConfig


def _snapshots(bus):
    return [e.payload for e in bus.get_history(EventType.POSITION)]


@pytest.mark.asyncio
async def test_one_snapshot_per_account(venue, transport, bus):
    venue.routes["members/me.json"] = {
        "sn": "PEA5TFFOGQHTIU",
        "accounts": [
            {"currency": "btc", "balance": "1.5", "locked": "0.5"},
            {"currency": "usd", "balance": "1000", "locked": "0"},
        ],
    }
    metrics = ConnectorMetrics()
    poller = PositionPoller(transport, bus, metrics=metrics)

    result = await poller.poll_positions()
    await bus.drain()

    assert result.success and result.events == 2
    btc, usd = _snapshots(bus)
    assert btc.currency == "BTC"
    assert btc.total_amount == Decimal("2.0")
    assert btc.held_amount == Decimal("0.5")
    assert usd.currency == "USD"
    assert usd.total_amount == Decimal("1000")
    assert usd.held_amount == Decimal("0")
    assert btc.observed_at == usd.observed_at

    [request] = venue.requests
    assert request.method == "GET"
    assert b"signature=" in request.url.query
    assert metrics.registry.get_sample_value("chankura_position_snapshots_total", {"currency": "BTC"}) == 1


@pytest.mark.asyncio
async def test_error_body_emits_nothing(venue, transport, bus):
    venue.routes["members/me.json"] = {"error": {"code": 2001, "message": "Authorization failed"}}
    poller = PositionPoller(transport, bus)

    result = await poller.poll_positions()
    await bus.drain()

    assert not result.success
    assert "Authorization failed" in result.error
    assert _snapshots(bus) == []


@pytest.mark.asyncio
async def test_bad_account_fails_whole_tick(venue, transport, bus):
    venue.routes["members/me.json"] = {
        "accounts": [
            {"currency": "btc", "balance": "1", "locked": "0"},
            {"currency": "eth", "balance": "oops", "locked": "0"},
        ],
    }
    result = await PositionPoller(transport, bus).poll_positions()
    await bus.drain()
    assert not result.success
    assert _snapshots(bus) == []


@pytest.mark.asyncio
async def test_transport_error_is_swallowed(bus):
    transport = MagicMock()
    transport.connectivity = ConnectivityBroadcaster()
    transport.signed_call = AsyncMock(side_effect=TransportError("request failed", url="https://x/members/me.json"))
    log_cb = MagicMock()

    poller = PositionPoller(transport, bus, PositionPollerConfig(log_event_callback=log_cb))
    result = await poller.poll_positions()

    assert not result.success
    transport.signed_call.assert_awaited_once_with("GET", "members/me.json")
    log_cb.assert_called_once()
    assert log_cb.call_args.args[0] == "poll_error"
