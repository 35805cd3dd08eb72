"""
Symbol resolution for the configured pair.

The venue names markets by concatenating the lower-cased base and quote
currencies (``BTC/USD`` -> ``btcusd``). At startup the ``markets`` listing is
fetched once to confirm the market exists and read its price precision;
no match is fatal.
"""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from chankura_gateway.core.models import CurrencyPair, MarketDetails
from chankura_gateway.core.utils import precision_to_tick
from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event

if TYPE_CHECKING:
    from chankura_gateway.infra.transport import SignedTransport

log = logging.getLogger(LOGGER_NAME)


class SymbolResolutionError(Exception):
    """The configured pair has no market on the venue."""


class SymbolProvider:
    def __init__(self, pair: CurrencyPair) -> None:
        self.pair = pair
        self.symbol = pair.base.lower() + pair.quote.lower()


def match_market(markets: Any, symbol: str) -> MarketDetails:
    if not isinstance(markets, list):
        raise SymbolResolutionError(f"unexpected markets payload while resolving {symbol}")
    for entry in markets:
        if isinstance(entry, dict) and entry.get("id") == symbol:
            try:
                precision = int(entry.get("price_precision", 2))
            except (TypeError, ValueError):
                raise SymbolResolutionError(
                    f"market {symbol} has an invalid price_precision: {entry.get('price_precision')!r}"
                ) from None
            return MarketDetails(symbol=symbol, price_precision=precision, min_tick=precision_to_tick(precision))
    raise SymbolResolutionError(f"cannot match pair to a Chankura symbol: {symbol}")


async def resolve_market(transport: "SignedTransport", pair: CurrencyPair) -> MarketDetails:
    """Look up ``pair`` in the venue's market list. Raises SymbolResolutionError."""
    provider = SymbolProvider(pair)
    resp = await transport.get("markets")
    details = match_market(resp.data, provider.symbol)
    log_event(log, "market_resolved", pair=str(pair), symbol=details.symbol,
              price_precision=details.price_precision, min_tick=details.min_tick)
    return details
