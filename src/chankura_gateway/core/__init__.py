"""
Core package.

Canonical model, JSON helpers and small utilities. The event bus and the
connectivity broadcaster are imported from their own modules.
"""

from chankura_gateway.core.json_utils import dumps, loads
from chankura_gateway.core.models import (
    ConnectivityStatus,
    CurrencyPair,
    MarketDetails,
    MarketSide,
    MarketTrade,
    OrderBook,
    OrderIntent,
    OrderReport,
    OrderStatus,
    OrderStatusUpdate,
    OrderType,
    PositionSnapshot,
    Side,
    TimeInForce,
    Timestamped,
)
from chankura_gateway.core.utils import now_ms, parse_timestamp, precision_to_tick, to_decimal

__all__ = [
    "dumps",
    "loads",
    "ConnectivityStatus",
    "CurrencyPair",
    "MarketDetails",
    "MarketSide",
    "MarketTrade",
    "OrderBook",
    "OrderIntent",
    "OrderReport",
    "OrderStatus",
    "OrderStatusUpdate",
    "OrderType",
    "PositionSnapshot",
    "Side",
    "TimeInForce",
    "Timestamped",
    "now_ms",
    "parse_timestamp",
    "precision_to_tick",
    "to_decimal",
]
