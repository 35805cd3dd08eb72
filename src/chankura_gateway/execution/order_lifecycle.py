"""
OrderLifecycleManager: order entry and fill reconciliation for one market.

Order entry (called by the engine, out of band from the pollers):

* ``submit(intent)``: a latency-only update is published before the network
  call, then ``Working`` with the exchange id or ``Rejected`` with the venue's
  message.
* ``cancel(report)``: same two-step pattern, ending in ``Cancelled`` or
  ``Rejected`` with ``cancel_rejected`` set. Orders are cancelled by exchange
  id only; a report without one never reaches the venue.
* ``replace(report)``: cancel, then submit. Not atomic: for a moment the old
  and new orders may both be live, or neither.

Submission failures are always data (an OrderStatusUpdate), never exceptions.

Reconciliation (periodic tick): poll own trades since the reconciliation
cursor, then for each fill poll the order detail and emit one consolidated
update. The cursor moves to now as soon as the trade poll returns, before
the detail polls, so a crash mid-cycle can reconcile a fill twice.
Overlapping cycles are serialized by a lock; delivery is still best-effort,
not exactly-once.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from chankura_gateway.core.event_bus import EventBus, EventType
from chankura_gateway.core.json_utils import dumps
from chankura_gateway.core.models import (
    OrderIntent,
    OrderReport,
    OrderStatus,
    OrderStatusUpdate,
    OrderType,
    Side,
    utc_now,
)
from chankura_gateway.core.polling import PollResult, poll_error_level, relay_connectivity
from chankura_gateway.core.utils import to_decimal, to_decimal_or_none
from chankura_gateway.infra.logging_cfg import LOGGER_NAME
from chankura_gateway.infra.transport import StaleNonceError, TransportError, extract_message

if TYPE_CHECKING:
    from chankura_gateway.infra.transport import SignedTransport
    from chankura_gateway.monitoring.metrics import ConnectorMetrics

log = logging.getLogger(LOGGER_NAME)

_ORDER_STATES = {
    "wait": OrderStatus.WORKING,
    "cancel": OrderStatus.CANCELLED,
    "done": OrderStatus.COMPLETE,
}

_SIDES = {Side.BID: "buy", Side.ASK: "sell"}


def map_order_state(state: Any) -> OrderStatus:
    """Venue order state -> canonical status. Unknown values map to OTHER."""
    if not isinstance(state, str):
        return OrderStatus.OTHER
    return _ORDER_STATES.get(state, OrderStatus.OTHER)


def encode_side(side: Side) -> str:
    try:
        return _SIDES[side]
    except KeyError:
        raise ValueError(f"cannot send an order with side {side}") from None


class VenueRejection(Exception):
    """The venue answered 200 with a business-level error message."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.payload = payload


@dataclass
class OrderLifecycleConfig:
    reconcile_lookback_sec: int = 60
    log_event_callback: Optional[Callable[..., None]] = None


class OrderLifecycleManager:
    """
    Usage:
        orders = OrderLifecycleManager("btcusd", transport, bus)
        await orders.submit(OrderIntent(orders.generate_client_order_id(), Side.BID, px, sz))
        scheduler.add("order_reconcile", 8.0, orders.reconcile)
    """

    SOURCE = "order_manager"

    cancels_by_client_order_id = False
    supports_cancel_all_open_orders = False

    def __init__(
        self,
        symbol: str,
        transport: "SignedTransport",
        bus: EventBus,
        config: Optional[OrderLifecycleConfig] = None,
        metrics: Optional["ConnectorMetrics"] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.symbol = symbol
        self.transport = transport
        self.bus = bus
        self.config = config or OrderLifecycleConfig()
        self._metrics = metrics
        self._clock = clock
        self._log_event = self.config.log_event_callback or self._default_log

        # exchange order id -> client order id, for orders this process placed
        self._client_ids: Dict[str, str] = {}
        # unix seconds; None until the first reconciliation trade poll returns
        self._since: Optional[int] = None
        self._reconcile_lock = asyncio.Lock()

        relay_connectivity(transport.connectivity, bus, self.SOURCE)

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log.log(level, dumps({"event": event, "source": self.SOURCE, "symbol": self.symbol, **kwargs}))

    @staticmethod
    def generate_client_order_id() -> str:
        return uuid.uuid4().hex

    @property
    def reconcile_cursor(self) -> Optional[int]:
        return self._since

    def client_order_id_for(self, exchange_order_id: str) -> Optional[str]:
        return self._client_ids.get(exchange_order_id)

    # ------------------------------------------------------------------
    # Order entry
    # ------------------------------------------------------------------

    async def submit(self, intent: OrderIntent) -> None:
        sent_at = utc_now()
        latency = sent_at - intent.created_at
        self._publish(OrderStatusUpdate(order_id=intent.client_order_id, observed_at=sent_at, latency=latency))
        if self._metrics is not None:
            self._metrics.orders_submitted.labels(side=intent.side.value).inc()
            self._metrics.submit_latency_ms.observe(latency.total_seconds() * 1000)

        try:
            exchange_id = await self._place(intent)
        except VenueRejection as rej:
            self._rejected("submit", intent.client_order_id, rej.message)
            return
        except (TransportError, StaleNonceError, ValueError) as exc:
            self._rejected("submit", intent.client_order_id, str(exc))
            return

        self._client_ids[exchange_id] = intent.client_order_id
        self._publish(OrderStatusUpdate(
            order_id=intent.client_order_id,
            exchange_order_id=exchange_id,
            status=OrderStatus.WORKING,
        ))
        self._log_event("order_working", order_id=intent.client_order_id, exchange_order_id=exchange_id,
                        side=intent.side.value, price=intent.price, size=intent.size)

    async def _place(self, intent: OrderIntent) -> str:
        params: Dict[str, Any] = {
            "market": self.symbol,
            "side": encode_side(intent.side),
            "volume": intent.size,
            "ord_type": intent.order_type.value,
        }
        if intent.order_type == OrderType.LIMIT:
            params["price"] = intent.price
        resp = await self.transport.signed_call("POST", "orders.json", params)

        message = extract_message(resp.data)
        if message:
            raise VenueRejection(message, resp.data)
        order_id = resp.data.get("id") if isinstance(resp.data, dict) else None
        if order_id is None:
            raise VenueRejection("order response carried no id", resp.data)
        return str(order_id)

    async def cancel(self, report: OrderReport) -> None:
        if not report.exchange_order_id:
            # never acknowledged by the venue, nothing to cancel there
            self._publish(OrderStatusUpdate(
                order_id=report.order_id,
                status=OrderStatus.CANCELLED,
                reject_reason="no exchange order id",
            ))
            self._log_event("cancel_without_exchange_id", level=logging.WARNING, order_id=report.order_id)
            return

        sent_at = utc_now()
        self._publish(OrderStatusUpdate(
            order_id=report.order_id,
            observed_at=sent_at,
            latency=sent_at - report.requested_at,
        ))

        try:
            resp = await self.transport.signed_call("POST", "order/delete.json", {"id": report.exchange_order_id})
            message = extract_message(resp.data)
            if message:
                raise VenueRejection(message, resp.data)
        except VenueRejection as rej:
            self._rejected("cancel", report.order_id, rej.message, cancel=True)
            return
        except (TransportError, StaleNonceError) as exc:
            self._rejected("cancel", report.order_id, str(exc), cancel=True)
            return

        self._client_ids.pop(report.exchange_order_id, None)
        self._publish(OrderStatusUpdate(
            order_id=report.order_id,
            exchange_order_id=report.exchange_order_id,
            status=OrderStatus.CANCELLED,
        ))
        if self._metrics is not None:
            self._metrics.orders_cancelled.inc()
        self._log_event("order_cancelled", order_id=report.order_id, exchange_order_id=report.exchange_order_id)

    async def replace(self, report: OrderReport) -> OrderIntent:
        """
        Cancel ``report``'s order, then submit a new one at its price/size.

        Returns the new intent so the caller can track its client order id.
        """
        await self.cancel(report)
        intent = OrderIntent(
            client_order_id=self.generate_client_order_id(),
            side=report.side,
            price=report.price,
            size=report.size,
            time_in_force=report.time_in_force,
            order_type=report.order_type,
        )
        self._log_event("order_replace", old_order_id=report.order_id, new_order_id=intent.client_order_id)
        await self.submit(intent)
        return intent

    async def cancel_all_open_orders(self) -> int:
        """Bulk cancel is not offered by the venue."""
        return 0

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self) -> PollResult:
        async with self._reconcile_lock:
            start = time.time()
            since = (
                int(self._clock()) - self.config.reconcile_lookback_sec
                if self._since is None
                else self._since
            )
            try:
                resp = await self.transport.signed_call(
                    "GET", "trades/my.json", {"market": self.symbol, "timestamp": since}
                )
                if not isinstance(resp.data, list):
                    raise ValueError(f"unexpected my-trades payload: {extract_message(resp.data) or resp.data!r}")
            except Exception as exc:
                self._record("order_reconcile", "error")
                self._log_event("poll_error", level=poll_error_level(exc), poller="order_reconcile",
                                err=str(exc), error_type=type(exc).__name__)
                return PollResult(success=False, error=str(exc), duration_ms=(time.time() - start) * 1000)

            self._since = int(self._clock())

            emitted = 0
            errors: List[str] = []
            for fill in resp.data:
                try:
                    await self._reconcile_fill(fill)
                    emitted += 1
                except Exception as exc:
                    errors.append(str(exc))
                    self._log_event("reconcile_fill_error", level=poll_error_level(exc),
                                    fill_id=fill.get("id") if isinstance(fill, dict) else None,
                                    err=str(exc), error_type=type(exc).__name__)

            self._record("order_reconcile", "ok" if not errors else "partial")
            self._log_event("order_reconcile_done", level=logging.DEBUG, fills=len(resp.data),
                            emitted=emitted, errors=len(errors), since=since, cursor=self._since)
            return PollResult(
                success=True,
                events=emitted,
                error="; ".join(errors) or None,
                duration_ms=(time.time() - start) * 1000,
            )

    async def _reconcile_fill(self, fill: Dict[str, Any]) -> None:
        order_ref = fill.get("order_id")
        if order_ref is None:
            raise ValueError(f"fill {fill.get('id')} has no order_id")
        exchange_id = str(order_ref)

        resp = await self.transport.signed_call("GET", "order.json", {"id": exchange_id})
        detail = resp.data
        message = extract_message(detail)
        if message or not isinstance(detail, dict):
            raise ValueError(f"order detail for {exchange_id} unavailable: {message or detail!r}")

        status = map_order_state(detail.get("state"))
        update = OrderStatusUpdate(
            order_id=self._client_ids.get(exchange_id, exchange_id),
            observed_at=resp.time,
            exchange_order_id=exchange_id,
            status=status,
            filled_quantity=to_decimal_or_none(detail.get("executed_volume")),
            remaining_quantity=to_decimal_or_none(detail.get("remaining_volume")),
            average_price=to_decimal_or_none(detail.get("avg_price")),
            last_price=to_decimal(fill["price"]),
            last_quantity=to_decimal(fill["volume"]),
        )
        self._publish(update)
        if status.is_terminal:
            self._client_ids.pop(exchange_id, None)
        if self._metrics is not None:
            self._metrics.fills_reconciled.inc()
        self._log_event("fill_reconciled", order_id=update.order_id, exchange_order_id=exchange_id,
                        status=status.value, last_price=update.last_price, last_quantity=update.last_quantity)

    # ------------------------------------------------------------------

    def _publish(self, update: OrderStatusUpdate) -> None:
        # synchronous enqueue: emission order is call order
        self.bus.emit_sync(EventType.ORDER_STATUS, update, source=self.SOURCE)

    def _rejected(self, action: str, order_id: str, reason: str, cancel: bool = False) -> None:
        self._publish(OrderStatusUpdate(
            order_id=order_id,
            status=OrderStatus.REJECTED,
            reject_reason=reason,
            cancel_rejected=cancel,
        ))
        if self._metrics is not None:
            self._metrics.orders_rejected.labels(action=action).inc()
        self._log_event(f"{action}_rejected", level=logging.WARNING, order_id=order_id, reason=reason)

    def _record(self, poller: str, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.polls.labels(poller=poller, outcome=outcome).inc()
