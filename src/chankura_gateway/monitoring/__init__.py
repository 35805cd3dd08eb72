"""Monitoring package: Prometheus metrics."""

from chankura_gateway.monitoring.metrics import ConnectorMetrics

__all__ = ["ConnectorMetrics"]
