"""
Canonical, venue-agnostic model consumed by the trading engine.

Everything here is immutable once constructed. Records are built per poll
cycle, handed to the event bus and owned by whoever receives them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Side(Enum):
    BID = "bid"
    ASK = "ask"
    UNKNOWN = "unknown"


class OrderStatus(Enum):
    WORKING = "working"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETE = "complete"
    OTHER = "other"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.REJECTED, OrderStatus.CANCELLED, OrderStatus.COMPLETE)


class TimeInForce(Enum):
    GTC = "gtc"
    IOC = "ioc"
    FOK = "fok"


class OrderType(Enum):
    LIMIT = "limit"
    MARKET = "market"


class ConnectivityStatus(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class CurrencyPair:
    base: str
    quote: str

    @classmethod
    def parse(cls, raw: str) -> "CurrencyPair":
        """Parse ``"BTC/USD"`` (or ``"BTC-USD"``) into a pair."""
        for sep in ("/", "-", ":"):
            if sep in raw:
                base, quote = raw.split(sep, 1)
                if base.strip() and quote.strip():
                    return cls(base.strip().upper(), quote.strip().upper())
        raise ValueError(f"cannot parse currency pair {raw!r}")

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"


@dataclass(frozen=True)
class Timestamped(Generic[T]):
    """A parsed venue response together with the time it was received."""
    data: T
    time: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class MarketSide:
    """One resting liquidity level."""
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class OrderBook:
    """
    Full-replace depth snapshot.

    Bids are best (highest) first, asks best (lowest) first, in the order the
    venue returned them. A snapshot never depends on the previous one.
    """
    bids: Tuple[MarketSide, ...]
    asks: Tuple[MarketSide, ...]
    observed_at: datetime


@dataclass(frozen=True)
class MarketTrade:
    price: Decimal
    size: Decimal
    occurred_at: datetime
    side: Side
    # True for trades fetched before the trade cursor was ever set (cold-start
    # catch-up window); consumers must not treat those as live signal.
    is_first_observed_batch: bool
    trade_id: Optional[str] = None


@dataclass(frozen=True)
class OrderIntent:
    client_order_id: str
    side: Side
    price: Decimal
    size: Decimal
    time_in_force: TimeInForce = TimeInForce.GTC
    order_type: OrderType = OrderType.LIMIT
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class OrderReport:
    """The engine's current view of one of its orders."""
    order_id: str
    side: Side
    price: Decimal
    size: Decimal
    exchange_order_id: Optional[str] = None
    time_in_force: TimeInForce = TimeInForce.GTC
    order_type: OrderType = OrderType.LIMIT
    # when the engine asked for the cancel/replace; cancel latency is measured from here
    requested_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class OrderStatusUpdate:
    """
    Partial order-state record. Any field besides ``order_id`` and
    ``observed_at`` may be absent; consumers merge it into their own state.
    """
    order_id: str
    observed_at: datetime = field(default_factory=utc_now)
    exchange_order_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    filled_quantity: Optional[Decimal] = None
    remaining_quantity: Optional[Decimal] = None
    average_price: Optional[Decimal] = None
    last_price: Optional[Decimal] = None
    last_quantity: Optional[Decimal] = None
    reject_reason: Optional[str] = None
    cancel_rejected: bool = False
    latency: Optional[timedelta] = None


@dataclass(frozen=True)
class PositionSnapshot:
    currency: str
    total_amount: Decimal
    held_amount: Decimal
    observed_at: datetime


@dataclass(frozen=True)
class MarketDetails:
    """Venue market resolved at startup for the configured pair."""
    symbol: str
    price_precision: int
    min_tick: Decimal
