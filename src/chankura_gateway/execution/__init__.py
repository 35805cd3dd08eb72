"""Execution package: order submission, cancellation and fill reconciliation."""

from chankura_gateway.execution.order_lifecycle import (
    OrderLifecycleConfig,
    OrderLifecycleManager,
    VenueRejection,
    map_order_state,
)

__all__ = [
    "OrderLifecycleConfig",
    "OrderLifecycleManager",
    "VenueRejection",
    "map_order_state",
]
