"""
Gateway factory: one fully-wired Chankura connector for one currency pair.

Usage:
    from chankura_gateway.gateway import create_gateway

    bus = EventBus()
    gateway = await create_gateway(Settings.load(), bus)
    await gateway.start()
    ...
    await gateway.stop()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

import httpx

from chankura_gateway.core.event_bus import EventBus
from chankura_gateway.core.models import CurrencyPair, MarketDetails
from chankura_gateway.execution.order_lifecycle import OrderLifecycleConfig, OrderLifecycleManager
from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event
from chankura_gateway.infra.rate_limit import RateLimitMonitor
from chankura_gateway.infra.scheduler import Scheduler
from chankura_gateway.infra.transport import SignedTransport
from chankura_gateway.market_data.market_poller import MarketPoller, MarketPollerConfig
from chankura_gateway.monitoring.metrics import ConnectorMetrics
from chankura_gateway.position_poller import PositionPoller
from chankura_gateway.symbols import SymbolProvider, resolve_market

if TYPE_CHECKING:
    from chankura_gateway.config.config import Settings

log = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class GatewayDetails:
    """Static venue facts the engine needs for pricing and risk."""
    min_tick_increment: Decimal
    name: str = "Chankura"
    maker_fee: Decimal = Decimal("0.001")
    taker_fee: Decimal = Decimal("0.002")
    has_self_trade_prevention: bool = False


class ChankuraGateway:
    """Owns the transport, the three pollers and their schedule."""

    def __init__(
        self,
        pair: CurrencyPair,
        market: MarketDetails,
        transport: SignedTransport,
        market_data: MarketPoller,
        orders: OrderLifecycleManager,
        positions: PositionPoller,
        scheduler: Scheduler,
        metrics: ConnectorMetrics,
    ) -> None:
        self.pair = pair
        self.market = market
        self.transport = transport
        self.market_data = market_data
        self.orders = orders
        self.positions = positions
        self.scheduler = scheduler
        self.metrics = metrics
        self.details = GatewayDetails(min_tick_increment=market.min_tick)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        await self.transport.start()
        self.scheduler.start()
        self._started = True
        log_event(log, "gateway_started", pair=str(self.pair), symbol=self.market.symbol,
                  tasks=self.scheduler.names)

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.transport.close()
        self._started = False
        log_event(log, "gateway_stopped", pair=str(self.pair))


async def create_gateway(
    settings: "Settings",
    bus: EventBus,
    client: Optional[httpx.AsyncClient] = None,
    metrics: Optional[ConnectorMetrics] = None,
) -> ChankuraGateway:
    """
    Build the transport, resolve the configured pair against the venue's
    market list and wire every component.

    Raises SymbolResolutionError when the pair has no market, and
    TransportError when the market list cannot be fetched.
    """
    metrics = metrics or ConnectorMetrics()
    pair = settings.currency_pair
    transport = SignedTransport(
        settings.http_url,
        settings.api_key,
        settings.api_secret,
        timeout=settings.http_timeout,
        client=client,
        connect_delay_sec=settings.connect_announce_ms / 1000.0,
        nonce_max_retries=settings.nonce_max_retries,
        rate_monitor=RateLimitMonitor(settings.rate_limit_per_min),
        metrics=metrics,
    )
    try:
        market = await resolve_market(transport, pair)
    except Exception:
        await transport.close()
        raise

    symbol = SymbolProvider(pair).symbol
    market_data = MarketPoller(
        symbol, transport, bus,
        MarketPollerConfig(book_depth=settings.book_depth, trade_lookback_sec=settings.trade_lookback_sec),
        metrics=metrics,
    )
    orders = OrderLifecycleManager(
        symbol, transport, bus,
        OrderLifecycleConfig(reconcile_lookback_sec=settings.trade_lookback_sec),
        metrics=metrics,
    )
    positions = PositionPoller(transport, bus, metrics=metrics)

    scheduler = Scheduler()
    scheduler.add("order_book", settings.book_poll_sec, market_data.poll_order_book)
    scheduler.add("market_trades", settings.trade_poll_sec, market_data.poll_trades)
    scheduler.add("order_reconcile", settings.order_reconcile_sec, orders.reconcile)
    scheduler.add("positions", settings.position_poll_sec, positions.poll_positions)

    return ChankuraGateway(pair, market, transport, market_data, orders, positions, scheduler, metrics)
