"""
Entry point wiring all components.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from chankura_gateway.config.config import ConfigError, Settings
from chankura_gateway.core.event_bus import EventBus, EventType
from chankura_gateway.gateway import create_gateway
from chankura_gateway.infra.logging_cfg import LOGGER_NAME, build_logger, log_event
from chankura_gateway.infra.transport import TransportError
from chankura_gateway.monitoring.metrics import ConnectorMetrics
from chankura_gateway.symbols import SymbolResolutionError

log = logging.getLogger(LOGGER_NAME)


def _log_payload(event) -> None:
    log_event(log, "bus_event", level=logging.DEBUG, type=event.type, source=event.source, payload=event.payload)


async def main() -> int:
    # configured before Settings.load so config_loaded reaches the handlers
    build_logger(LOGGER_NAME, file_path=os.getenv("CK_LOG_FILE", "chankura.log") or None)
    try:
        cfg = Settings.load()
    except ConfigError as exc:
        log_event(log, "config_error", level=logging.ERROR, err=str(exc))
        return 1

    build_logger(LOGGER_NAME, level=logging.getLevelName(cfg.log_level), file_path=cfg.log_file)

    bus = EventBus()
    for event_type in EventType:
        bus.subscribe(event_type, _log_payload, name="debug_log")

    metrics = ConnectorMetrics()
    try:
        gateway = await create_gateway(cfg, bus, metrics=metrics)
    except (SymbolResolutionError, TransportError) as exc:
        log_event(log, "startup_failed", level=logging.ERROR, err=str(exc), error_type=type(exc).__name__)
        return 1

    if cfg.metrics_port:
        metrics.serve(cfg.metrics_port)
        log_event(log, "metrics_server_started", port=cfg.metrics_port)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    bus_task = asyncio.create_task(bus.start())

    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    await gateway.start()
    try:
        await stop_event.wait()
        log.info("Shutdown signal received, cleaning up...")
    finally:
        await gateway.stop()
        await bus.drain()
        bus.stop()
        await asyncio.gather(bus_task, return_exceptions=True)
        log.info("Shutdown complete")
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        print("\nGateway stopped by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
