"""
Connectivity broadcaster.

The signed transport is the single source of connectivity status. Every
component that faces the engine listens here and re-emits the status onto
its own channel, so none of them tracks liveness on its own.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from chankura_gateway.core.models import ConnectivityStatus
from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event

log = logging.getLogger(LOGGER_NAME)

Listener = Callable[[ConnectivityStatus], None]


class ConnectivityBroadcaster:
    def __init__(self) -> None:
        self._status: Optional[ConnectivityStatus] = None
        self._listeners: List[Listener] = []

    @property
    def status(self) -> Optional[ConnectivityStatus]:
        """Last announced status, None before the first announcement."""
        return self._status

    def on(self, listener: Listener) -> None:
        """Register a listener. A known status is replayed to it immediately."""
        self._listeners.append(listener)
        if self._status is not None:
            self._deliver(listener, self._status)

    def off(self, listener: Listener) -> None:
        self._listeners = [l for l in self._listeners if l != listener]

    def trigger(self, status: ConnectivityStatus) -> None:
        self._status = status
        log_event(log, "connectivity_changed", status=status.value, listeners=len(self._listeners))
        for listener in list(self._listeners):
            self._deliver(listener, status)

    def _deliver(self, listener: Listener, status: ConnectivityStatus) -> None:
        try:
            listener(status)
        except Exception as exc:
            log_event(log, "connectivity_listener_error", level=logging.ERROR, error=str(exc))
