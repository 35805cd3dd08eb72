"""
Structured logging setup for the connector.

- Rich console output for humans
- JSON file output written by a background listener so the event loop
  never blocks on disk
- Throttling for events that can fire every tick while the venue is down
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import queue
import time
from datetime import datetime
from typing import Dict, Optional, Set, Tuple

from rich.logging import RichHandler

from chankura_gateway.core.json_utils import dumps, loads

LOGGER_NAME = "chankura"

DEFAULT_THROTTLED_EVENTS = frozenset({"poll_error", "stale_nonce_retry", "rate_limit_exceeded"})

# logger name -> (file path, queue handler, listener, file handler)
_file_sinks: Dict[str, Tuple[str, logging.Handler, logging.handlers.QueueListener, logging.Handler]] = {}


class JsonFormatter(logging.Formatter):
    """One JSON object per line for log ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": record.created,
            "ts_iso": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return dumps(payload)


class ThrottledFilter(logging.Filter):
    """
    Suppress repeats of noisy structured events.

    The first occurrence of an event (per event name and source) passes, then
    duplicates are dropped for ``cooldown_sec``. Non-JSON messages always pass.
    """

    def __init__(self, cooldown_sec: float = 30.0, throttled_events: Optional[Set[str]] = None):
        super().__init__()
        self._cooldown = cooldown_sec
        self._last_seen: Dict[str, float] = {}
        self._throttled_events = throttled_events or set(DEFAULT_THROTTLED_EVENTS)

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            data = loads(record.getMessage())
        except ValueError:
            return True
        if not isinstance(data, dict):
            return True
        event = data.get("event", "")
        if event not in self._throttled_events:
            return True

        now = time.time()
        key = f"{event}:{data.get('source', '')}"
        if now - self._last_seen.get(key, 0.0) < self._cooldown:
            return False
        self._last_seen[key] = now
        return True


def build_logger(
    name: str = LOGGER_NAME,
    level: int = logging.INFO,
    file_path: Optional[str] = "chankura.log",
    throttle_warnings: bool = True,
) -> logging.Logger:
    """
    Configure the connector logger. Calling it again adjusts levels and
    moves the JSON file output when ``file_path`` changed.

    Args:
        name: Logger name
        level: Minimum log level
        file_path: JSON log file (None or "" disables file logging)
        throttle_warnings: Throttle repetitive poll/retry events on the console
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        current = _file_sinks.get(name)
        if (current[0] if current else None) != (file_path or None):
            _detach_file_sink(logger)
            if file_path:
                _attach_file_sink(logger, file_path, level)
        elif current:
            current[3].setLevel(level)
        return logger

    console = RichHandler(
        rich_tracebacks=False,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
    )
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(message)s"))
    if throttle_warnings:
        console.addFilter(ThrottledFilter(cooldown_sec=30.0))
    logger.addHandler(console)

    if file_path:
        _attach_file_sink(logger, file_path, level)

    logger.propagate = False
    return logger


def log_file_path(name: str = LOGGER_NAME) -> Optional[str]:
    """Path of the JSON log file currently attached to ``name``, if any."""
    sink = _file_sinks.get(name)
    return sink[0] if sink else None


def _attach_file_sink(logger: logging.Logger, file_path: str, level: int) -> None:
    file_handler = logging.FileHandler(file_path)
    file_handler.setFormatter(JsonFormatter())
    file_handler.setLevel(level)

    log_queue: queue.Queue = queue.Queue(maxsize=10000)
    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, file_handler, respect_handler_level=True)
    listener.start()
    if not _file_sinks:
        atexit.register(_stop_file_sinks)
    _file_sinks[logger.name] = (file_path, queue_handler, listener, file_handler)
    logger.addHandler(queue_handler)


def _detach_file_sink(logger: logging.Logger) -> None:
    sink = _file_sinks.pop(logger.name, None)
    if sink is None:
        return
    _, queue_handler, listener, file_handler = sink
    logger.removeHandler(queue_handler)
    listener.stop()
    file_handler.close()


def _stop_file_sinks() -> None:
    for name in list(_file_sinks):
        _detach_file_sink(logging.getLogger(name))


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **data) -> None:
    """
    Log a structured event.

    Usage:
        log_event(log, "order_submitted", side="bid", px=Decimal("100"))
    """
    logger.log(level, dumps({"event": event, **data}))
