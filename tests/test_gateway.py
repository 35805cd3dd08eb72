"""
Tests for symbol resolution and gateway wiring.
"""
import asyncio
from decimal import Decimal

import httpx
import pytest

from chankura_gateway.config.config import Settings
from chankura_gateway.core.event_bus import EventType
from chankura_gateway.core.models import ConnectivityStatus, CurrencyPair
from chankura_gateway.gateway import GatewayDetails, create_gateway
from chankura_gateway.symbols import SymbolProvider, SymbolResolutionError, match_market, resolve_market

from conftest import BASE_URL

MARKETS = [
    {"id": "btcusd", "name": "BTC/USD", "price_precision": 2},
    {"id": "ethbtc", "name": "ETH/BTC", "price_precision": 6},
]


def _settings(**overrides):
    base = dict(http_url=BASE_URL, api_key="KEY", api_secret="SECRET", pair="BTC/USD",
                connect_announce_ms=0, log_file=None)
    base.update(overrides)
    return Settings(**base)


class TestSymbols:
    def test_symbol_is_lowercased_concatenation(self):
        assert SymbolProvider(CurrencyPair("BTC", "USD")).symbol == "btcusd"
        assert SymbolProvider(CurrencyPair.parse("eth-btc")).symbol == "ethbtc"

    def test_match_market_tick(self):
        details = match_market(MARKETS, "ethbtc")
        assert details.price_precision == 6
        assert details.min_tick == Decimal("0.000001")

    def test_no_match_is_fatal(self):
        with pytest.raises(SymbolResolutionError):
            match_market(MARKETS, "dogeusd")

    def test_unexpected_payload(self):
        with pytest.raises(SymbolResolutionError):
            match_market({"error": "nope"}, "btcusd")

    @pytest.mark.parametrize("precision", [None, "two", [2]])
    def test_bad_precision_is_a_resolution_error(self, precision):
        with pytest.raises(SymbolResolutionError, match="price_precision"):
            match_market([{"id": "btcusd", "price_precision": precision}], "btcusd")

    @pytest.mark.asyncio
    async def test_resolve_market_uses_public_get(self, venue, transport):
        venue.routes["markets"] = MARKETS
        details = await resolve_market(transport, CurrencyPair("BTC", "USD"))
        assert details.symbol == "btcusd"
        assert details.min_tick == Decimal("0.01")
        assert b"signature" not in venue.requests[0].url.query


class TestGateway:
    @pytest.mark.asyncio
    async def test_create_and_run(self, venue, client, bus):
        venue.routes.update({
            "markets": MARKETS,
            "order_book.json": {"bids": [{"price": "100", "volume": "1"}], "asks": []},
            "trades.json": [],
            "trades/my.json": [],
            "members/me.json": {"accounts": [{"currency": "usd", "balance": "10", "locked": "0"}]},
        })
        gateway = await create_gateway(_settings(), bus, client=client)

        assert gateway.details == GatewayDetails(min_tick_increment=Decimal("0.01"))
        assert gateway.details.name == "Chankura"
        assert gateway.details.maker_fee == Decimal("0.001")
        assert gateway.details.taker_fee == Decimal("0.002")
        assert gateway.details.has_self_trade_prevention is False
        assert sorted(gateway.scheduler.names) == ["market_trades", "order_book", "order_reconcile", "positions"]

        await gateway.start()
        await asyncio.sleep(0.05)
        await gateway.stop()
        await bus.drain()

        assert bus.get_history(EventType.MARKET_DATA)
        assert bus.get_history(EventType.POSITION)
        statuses = [e.payload for e in bus.get_history(EventType.CONNECTIVITY)]
        # three components relay each transport change
        assert statuses.count(ConnectivityStatus.CONNECTED) == 3
        assert statuses[-1] == ConnectivityStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_unknown_pair_fails_startup(self, venue, client, bus):
        venue.routes["markets"] = MARKETS
        with pytest.raises(SymbolResolutionError):
            await create_gateway(_settings(pair="DOGE/USD"), bus, client=client)

    @pytest.mark.asyncio
    async def test_market_list_failure_fails_startup(self, venue, client, bus):
        from chankura_gateway.infra.transport import TransportError

        venue.routes["markets"] = lambda request: httpx.Response(500, text="down")
        with pytest.raises(TransportError):
            await create_gateway(_settings(), bus, client=client)
