"""
MarketPoller: order-book snapshots and the public trade tape over REST.

Two independent ticks:

* order book: ``order_book.json`` with fixed depth on each side, converted
  level-for-level and emitted as one full-replace ``OrderBook``.
* trades: ``trades.json`` since the trade cursor. Before the cursor is ever
  set (cold) the request looks back a fixed window and every trade of that
  batch is flagged ``is_first_observed_batch``. Once a batch has been fully
  emitted the cursor moves to wall-clock now (warm). Cold -> warm is one-way.

The cursor is a trailing edge: overlapping windows can deliver a trade twice.
Consumers needing exactly-once must de-duplicate on ``MarketTrade.trade_id``.

A failed tick is logged, returns a failed PollResult and leaves the cursor
alone so the next tick retries the same window.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING

from chankura_gateway.core.event_bus import EventBus, EventType
from chankura_gateway.core.json_utils import dumps
from chankura_gateway.core.models import MarketSide, MarketTrade, OrderBook, Side, Timestamped
from chankura_gateway.core.polling import PollResult, poll_error_level, relay_connectivity
from chankura_gateway.core.utils import parse_timestamp, to_decimal
from chankura_gateway.infra.logging_cfg import LOGGER_NAME

if TYPE_CHECKING:
    from chankura_gateway.infra.transport import SignedTransport
    from chankura_gateway.monitoring.metrics import ConnectorMetrics

log = logging.getLogger(LOGGER_NAME)


def decode_side(side: Optional[str]) -> Side:
    if side == "buy":
        return Side.BID
    if side == "sell":
        return Side.ASK
    return Side.UNKNOWN


def convert_market_side(level: Dict[str, Any]) -> MarketSide:
    return MarketSide(price=to_decimal(level["price"]), size=to_decimal(level["volume"]))


def convert_market_sides(levels: Sequence[Dict[str, Any]]) -> tuple:
    return tuple(convert_market_side(level) for level in levels)


def convert_order_book(resp: Timestamped[Any]) -> OrderBook:
    data = resp.data
    if not isinstance(data, dict):
        raise ValueError(f"unexpected order book payload: {type(data).__name__}")
    return OrderBook(
        bids=convert_market_sides(data.get("bids") or []),
        asks=convert_market_sides(data.get("asks") or []),
        observed_at=resp.time,
    )


def convert_trade(raw: Dict[str, Any], first_batch: bool) -> MarketTrade:
    trade_id = raw.get("id")
    return MarketTrade(
        price=to_decimal(raw["price"]),
        size=to_decimal(raw["volume"]),
        occurred_at=parse_timestamp(raw["created_at"]),
        side=decode_side(raw.get("side")),
        is_first_observed_batch=first_batch,
        trade_id=str(trade_id) if trade_id is not None else None,
    )


@dataclass
class MarketPollerConfig:
    book_depth: int = 5
    trade_lookback_sec: int = 60
    log_event_callback: Optional[Callable[..., None]] = None


class MarketPoller:
    """
    Usage:
        poller = MarketPoller("btcusd", transport, bus)
        scheduler.add("order_book", 5.0, poller.poll_order_book)
        scheduler.add("market_trades", 15.0, poller.poll_trades)
    """

    SOURCE = "market_poller"

    def __init__(
        self,
        symbol: str,
        transport: "SignedTransport",
        bus: EventBus,
        config: Optional[MarketPollerConfig] = None,
        metrics: Optional["ConnectorMetrics"] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.symbol = symbol
        self.transport = transport
        self.bus = bus
        self.config = config or MarketPollerConfig()
        self._metrics = metrics
        self._clock = clock
        self._log_event = self.config.log_event_callback or self._default_log

        # unix seconds; None until the first trade batch has been emitted
        self._since: Optional[int] = None
        self._book_lock = asyncio.Lock()
        self._trade_lock = asyncio.Lock()

        relay_connectivity(transport.connectivity, bus, self.SOURCE)

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log.log(level, dumps({"event": event, "source": self.SOURCE, "symbol": self.symbol, **kwargs}))

    @property
    def is_warm(self) -> bool:
        return self._since is not None

    @property
    def trade_cursor(self) -> Optional[int]:
        return self._since

    # ------------------------------------------------------------------
    # Order book
    # ------------------------------------------------------------------

    async def poll_order_book(self) -> PollResult:
        async with self._book_lock:
            start = time.time()
            params = {
                "market": self.symbol,
                "bids_limit": self.config.book_depth,
                "asks_limit": self.config.book_depth,
            }
            try:
                resp = await self.transport.get("order_book.json", params)
                book = convert_order_book(resp)
            except Exception as exc:
                return self._failed("order_book", exc, start)

            await self.bus.emit(EventType.MARKET_DATA, book, source=self.SOURCE)
            self._record("order_book", "ok")
            self._log_event("order_book_polled", level=logging.DEBUG, bids=len(book.bids), asks=len(book.asks))
            return PollResult(success=True, events=1, duration_ms=(time.time() - start) * 1000)

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    async def poll_trades(self) -> PollResult:
        async with self._trade_lock:
            start = time.time()
            first_batch = self._since is None
            since = int(self._clock()) - self.config.trade_lookback_sec if first_batch else self._since
            try:
                resp = await self.transport.get("trades.json", {"market": self.symbol, "timestamp": since})
                if not isinstance(resp.data, list):
                    raise ValueError(f"unexpected trades payload: {type(resp.data).__name__}")
                trades: List[MarketTrade] = [convert_trade(raw, first_batch) for raw in resp.data]
            except Exception as exc:
                return self._failed("market_trades", exc, start)

            for trade in trades:
                await self.bus.emit(EventType.MARKET_TRADE, trade, source=self.SOURCE)
            self._since = int(self._clock())

            if self._metrics is not None and trades:
                self._metrics.market_trades.labels(symbol=self.symbol).inc(len(trades))
            self._record("market_trades", "ok")
            self._log_event(
                "market_trades_polled",
                level=logging.DEBUG,
                count=len(trades),
                since=since,
                cursor=self._since,
                first_batch=first_batch,
            )
            return PollResult(success=True, events=len(trades), duration_ms=(time.time() - start) * 1000)

    # ------------------------------------------------------------------

    def _failed(self, poller: str, exc: Exception, start: float) -> PollResult:
        self._record(poller, "error")
        self._log_event("poll_error", level=poll_error_level(exc), poller=poller, err=str(exc),
                        error_type=type(exc).__name__)
        return PollResult(success=False, error=str(exc), duration_ms=(time.time() - start) * 1000)

    def _record(self, poller: str, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.polls.labels(poller=poller, outcome=outcome).inc()
