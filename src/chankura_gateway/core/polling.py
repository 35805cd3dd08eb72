"""
Shared pieces for the periodic pollers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from chankura_gateway.core.connectivity import ConnectivityBroadcaster
from chankura_gateway.core.event_bus import EventBus, EventType
from chankura_gateway.core.models import ConnectivityStatus
from chankura_gateway.infra.transport import TransportError


@dataclass
class PollResult:
    """Outcome of one tick. A failed tick leaves every cursor untouched."""
    success: bool
    events: int = 0
    error: Optional[str] = None
    duration_ms: float = 0.0


def relay_connectivity(broadcaster: ConnectivityBroadcaster, bus: EventBus, source: str) -> None:
    """Re-emit every transport connectivity change, unchanged, as ``source``."""

    def _relay(status: ConnectivityStatus) -> None:
        bus.emit_sync(EventType.CONNECTIVITY, status, source=source)

    broadcaster.on(_relay)


def poll_error_level(exc: Exception) -> int:
    # transport failures are routine while the venue is unreachable
    return logging.WARNING if isinstance(exc, TransportError) else logging.ERROR
