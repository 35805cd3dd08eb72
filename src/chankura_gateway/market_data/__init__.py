"""Market data package: order-book and public trade polling."""

from chankura_gateway.market_data.market_poller import MarketPoller, MarketPollerConfig

__all__ = ["MarketPoller", "MarketPollerConfig"]
