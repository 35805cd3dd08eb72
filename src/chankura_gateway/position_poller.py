"""
PositionPoller: account balances as canonical position snapshots.

One signed ``members/me.json`` call per tick; every account entry becomes its
own PositionSnapshot (replace-on-arrival per currency, no batching).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from chankura_gateway.core.event_bus import EventBus, EventType
from chankura_gateway.core.json_utils import dumps
from chankura_gateway.core.models import PositionSnapshot
from chankura_gateway.core.polling import PollResult, poll_error_level, relay_connectivity
from chankura_gateway.core.utils import to_decimal
from chankura_gateway.infra.logging_cfg import LOGGER_NAME
from chankura_gateway.infra.transport import extract_message

if TYPE_CHECKING:
    from chankura_gateway.infra.transport import SignedTransport
    from chankura_gateway.monitoring.metrics import ConnectorMetrics

log = logging.getLogger(LOGGER_NAME)


def convert_account(account: Dict[str, Any], observed_at: datetime) -> PositionSnapshot:
    """``balance`` is free funds and ``locked`` is held in orders; total is both."""
    balance = to_decimal(account.get("balance", "0"))
    locked = to_decimal(account.get("locked", "0"))
    return PositionSnapshot(
        currency=str(account["currency"]).upper(),
        total_amount=balance + locked,
        held_amount=locked,
        observed_at=observed_at,
    )


@dataclass
class PositionPollerConfig:
    log_event_callback: Optional[Callable[..., None]] = None


class PositionPoller:
    SOURCE = "position_poller"

    def __init__(
        self,
        transport: "SignedTransport",
        bus: EventBus,
        config: Optional[PositionPollerConfig] = None,
        metrics: Optional["ConnectorMetrics"] = None,
    ) -> None:
        self.transport = transport
        self.bus = bus
        self.config = config or PositionPollerConfig()
        self._metrics = metrics
        self._log_event = self.config.log_event_callback or self._default_log
        self._lock = asyncio.Lock()

        relay_connectivity(transport.connectivity, bus, self.SOURCE)

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log.log(level, dumps({"event": event, "source": self.SOURCE, **kwargs}))

    async def poll_positions(self) -> PollResult:
        async with self._lock:
            start = time.time()
            try:
                resp = await self.transport.signed_call("GET", "members/me.json")
                accounts = resp.data.get("accounts") if isinstance(resp.data, dict) else None
                if not isinstance(accounts, list):
                    raise ValueError(f"no accounts in response: {extract_message(resp.data) or resp.data!r}")
                snapshots: List[PositionSnapshot] = [convert_account(a, resp.time) for a in accounts]
            except Exception as exc:
                self._record("error")
                self._log_event("poll_error", level=poll_error_level(exc), poller="positions",
                                err=str(exc), error_type=type(exc).__name__)
                return PollResult(success=False, error=str(exc), duration_ms=(time.time() - start) * 1000)

            for snap in snapshots:
                await self.bus.emit(EventType.POSITION, snap, source=self.SOURCE)
                if self._metrics is not None:
                    self._metrics.position_snapshots.labels(currency=snap.currency).inc()
            self._record("ok")
            self._log_event("positions_polled", level=logging.DEBUG, currencies=[s.currency for s in snapshots])
            return PollResult(success=True, events=len(snapshots), duration_ms=(time.time() - start) * 1000)

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.polls.labels(poller="positions", outcome=outcome).inc()
