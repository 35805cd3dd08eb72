"""
Prometheus metrics for connector observability.

Organized into: transport, polling, orders, positions.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server


class ConnectorMetrics:
    """All connector metrics, registered on a private registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        reg = self.registry

        # === Transport ===
        self.http_requests = Counter(
            'chankura_http_requests_total',
            'HTTP requests issued to the venue',
            labelnames=['method', 'path', 'signed'],
            registry=reg
        )
        self.transport_errors = Counter(
            'chankura_transport_errors_total',
            'Network or JSON parse failures',
            labelnames=['path'],
            registry=reg
        )
        self.nonce_retries = Counter(
            'chankura_nonce_retries_total',
            'Signed calls retried after a stale nonce rejection',
            labelnames=['path'],
            registry=reg
        )

        # === Polling ===
        self.polls = Counter(
            'chankura_polls_total',
            'Poll ticks by outcome',
            labelnames=['poller', 'outcome'],
            registry=reg
        )
        self.market_trades = Counter(
            'chankura_market_trades_total',
            'Public trades emitted',
            labelnames=['symbol'],
            registry=reg
        )

        # === Orders ===
        self.orders_submitted = Counter(
            'chankura_orders_submitted_total',
            'Orders sent to the venue',
            labelnames=['side'],
            registry=reg
        )
        self.orders_rejected = Counter(
            'chankura_orders_rejected_total',
            'Order or cancel requests rejected',
            labelnames=['action'],
            registry=reg
        )
        self.orders_cancelled = Counter(
            'chankura_orders_cancelled_total',
            'Orders cancelled',
            registry=reg
        )
        self.submit_latency_ms = Histogram(
            'chankura_submit_latency_ms',
            'Intent creation to submission (milliseconds)',
            buckets=[1, 5, 10, 50, 100, 500, 1000, 5000],
            registry=reg
        )
        self.fills_reconciled = Counter(
            'chankura_fills_reconciled_total',
            'Fills turned into order status updates',
            registry=reg
        )

        # === Positions ===
        self.position_snapshots = Counter(
            'chankura_position_snapshots_total',
            'Position snapshots emitted',
            labelnames=['currency'],
            registry=reg
        )

    def serve(self, port: int) -> None:
        """Expose this registry on ``port`` (background thread)."""
        start_http_server(port, registry=self.registry)
