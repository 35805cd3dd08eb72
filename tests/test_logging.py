import logging
import logging.handlers
from decimal import Decimal

from chankura_gateway.core.json_utils import dumps, loads
from chankura_gateway.core.models import Side
from chankura_gateway.infra.logging_cfg import (
    JsonFormatter,
    ThrottledFilter,
    build_logger,
    log_event,
    log_file_path,
)


def _record(msg, level=logging.WARNING):
    return logging.LogRecord("chankura", level, __file__, 1, msg, None, None)


def test_throttles_repeated_poll_errors():
    filt = ThrottledFilter(cooldown_sec=60)
    msg = dumps({"event": "poll_error", "source": "market_poller"})
    assert filt.filter(_record(msg))
    assert not filt.filter(_record(msg))
    # a different source is tracked separately
    assert filt.filter(_record(dumps({"event": "poll_error", "source": "position_poller"})))


def test_other_events_pass():
    filt = ThrottledFilter(cooldown_sec=60)
    msg = dumps({"event": "order_working"})
    assert filt.filter(_record(msg))
    assert filt.filter(_record(msg))
    assert filt.filter(_record("plain text"))


def test_json_formatter():
    line = JsonFormatter().format(_record("hello", logging.INFO))
    data = loads(line)
    assert data["msg"] == "hello"
    assert data["level"] == "INFO"
    assert data["name"] == "chankura"


def test_dumps_handles_canonical_values():
    assert loads(dumps({"px": Decimal("1.50"), "side": Side.BID})) == {"px": "1.50", "side": "bid"}


def test_log_event_structured(caplog):
    logger = logging.getLogger("ck_test_events")
    with caplog.at_level(logging.INFO, logger="ck_test_events"):
        log_event(logger, "order_working", order_id="c1")
    assert loads(caplog.records[-1].getMessage()) == {"event": "order_working", "order_id": "c1"}


def test_build_logger_is_idempotent(tmp_path):
    name = "chankura.test_build"
    logger = build_logger(name, level=logging.DEBUG, file_path=str(tmp_path / "out.log"))
    handlers = list(logger.handlers)
    again = build_logger(name, level=logging.WARNING, file_path=str(tmp_path / "out.log"))
    assert again is logger
    assert again.handlers == handlers
    assert logger.level == logging.WARNING


def test_build_logger_moves_file_output(tmp_path):
    name = "chankura.test_move"
    first, second = str(tmp_path / "first.log"), str(tmp_path / "second.log")
    logger = build_logger(name, file_path=first)
    assert log_file_path(name) == first

    build_logger(name, file_path=second)
    assert log_file_path(name) == second
    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert len(queue_handlers) == 1

    log_event(logger, "after_move")
    build_logger(name, file_path=None)
    assert log_file_path(name) is None
    assert not any(isinstance(h, logging.handlers.QueueHandler) for h in logger.handlers)
    assert "after_move" in (tmp_path / "second.log").read_text(encoding="utf-8")
    assert "after_move" not in (tmp_path / "first.log").read_text(encoding="utf-8")
