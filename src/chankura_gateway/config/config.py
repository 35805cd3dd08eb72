"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from chankura_gateway.config.overrides import load_overrides
from chankura_gateway.core.models import CurrencyPair
from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event

load_dotenv()

DEFAULT_HTTP_URL = "https://www.chankura.com/api/v2"

_SECRET_FIELDS = ("api_key", "api_secret")


class ConfigError(ValueError):
    """Invalid or incomplete configuration. Fatal at startup."""


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    http_url: str
    api_key: str
    api_secret: str
    pair: str
    http_timeout: float = 15.0
    book_poll_sec: float = 5.0
    trade_poll_sec: float = 15.0
    order_reconcile_sec: float = 8.0
    position_poll_sec: float = 15.0
    trade_lookback_sec: int = 60
    book_depth: int = 5
    connect_announce_ms: int = 10
    nonce_max_retries: int = 0  # 0 = retry stale nonces indefinitely
    rate_limit_per_min: int = 60
    metrics_port: int = 0  # 0 = no metrics endpoint
    log_level: str = "INFO"
    log_file: Optional[str] = "chankura.log"

    def dump(self) -> Dict[str, Any]:
        """Settings as a dict with credentials redacted, for logging."""
        out = dataclasses.asdict(self)
        for key in _SECRET_FIELDS:
            if out.get(key):
                out[key] = "***"
        return out

    @property
    def currency_pair(self) -> CurrencyPair:
        return CurrencyPair.parse(self.pair)

    @classmethod
    def load(cls, config_file: Optional[str] = None) -> "Settings":
        """Read CK_* environment variables, then apply the YAML overrides file if present."""
        log_file = os.getenv("CK_LOG_FILE", "chankura.log")
        cfg = cls(
            http_url=os.getenv("CK_HTTP_URL", DEFAULT_HTTP_URL),
            api_key=os.getenv("CK_API_KEY", ""),
            api_secret=os.getenv("CK_API_SECRET", ""),
            pair=os.getenv("CK_PAIR", "BTC/USD"),
            http_timeout=_float_env("CK_HTTP_TIMEOUT", 15.0),
            book_poll_sec=_float_env("CK_BOOK_POLL_SEC", 5.0),
            trade_poll_sec=_float_env("CK_TRADE_POLL_SEC", 15.0),
            order_reconcile_sec=_float_env("CK_ORDER_RECONCILE_SEC", 8.0),
            position_poll_sec=_float_env("CK_POSITION_POLL_SEC", 15.0),
            trade_lookback_sec=_int_env("CK_TRADE_LOOKBACK_SEC", 60),
            book_depth=_int_env("CK_BOOK_DEPTH", 5),
            connect_announce_ms=_int_env("CK_CONNECT_ANNOUNCE_MS", 10),
            nonce_max_retries=_int_env("CK_NONCE_MAX_RETRIES", 0),
            rate_limit_per_min=_int_env("CK_RATE_LIMIT_PER_MIN", 60),
            metrics_port=_int_env("CK_METRICS_PORT", 0),
            log_level=os.getenv("CK_LOG_LEVEL", "INFO").upper(),
            log_file=log_file or None,
        )
        try:
            overrides = load_overrides(config_file)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"cannot read config overrides: {exc}") from exc
        if overrides:
            cfg = cfg.with_overrides(overrides)
        cfg._validate()
        _sanity_check(cfg)
        return cfg

    def with_overrides(self, overrides: Mapping[str, Any]) -> "Settings":
        known = {f.name: f for f in dataclasses.fields(self)}
        unknown = sorted(k for k in overrides if k not in known)
        if unknown:
            raise ConfigError(f"unknown settings in overrides: {', '.join(unknown)}")
        coerced: Dict[str, Any] = {}
        for key, value in overrides.items():
            current = getattr(self, key)
            if value is None or current is None or isinstance(current, str):
                coerced[key] = value if value is None else str(value)
                continue
            try:
                coerced[key] = type(current)(value)
            except (TypeError, ValueError):
                raise ConfigError(f"override {key}={value!r} is not a valid {type(current).__name__}") from None
        return dataclasses.replace(self, **coerced)

    def _validate(self) -> None:
        if not self.http_url.startswith(("http://", "https://")):
            raise ConfigError("CK_HTTP_URL must be an http(s) URL")
        if not self.api_key or not self.api_secret:
            raise ConfigError("Missing credentials: set CK_API_KEY and CK_API_SECRET")
        try:
            CurrencyPair.parse(self.pair)
        except ValueError as exc:
            raise ConfigError(f"CK_PAIR: {exc}") from None
        if self.http_timeout <= 0:
            raise ConfigError("CK_HTTP_TIMEOUT must be > 0")
        for name in ("book_poll_sec", "trade_poll_sec", "order_reconcile_sec", "position_poll_sec"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"CK_{name.upper()} must be > 0")
        if self.trade_lookback_sec <= 0:
            raise ConfigError("CK_TRADE_LOOKBACK_SEC must be > 0")
        if self.book_depth <= 0:
            raise ConfigError("CK_BOOK_DEPTH must be > 0")
        if self.connect_announce_ms < 0:
            raise ConfigError("CK_CONNECT_ANNOUNCE_MS must be >= 0")
        if self.nonce_max_retries < 0:
            raise ConfigError("CK_NONCE_MAX_RETRIES must be >= 0")
        if self.rate_limit_per_min <= 0:
            raise ConfigError("CK_RATE_LIMIT_PER_MIN must be > 0")
        if not 0 <= self.metrics_port <= 65535:
            raise ConfigError("CK_METRICS_PORT must be a valid port or 0")
        if logging.getLevelName(self.log_level) == f"Level {self.log_level}":
            raise ConfigError(f"CK_LOG_LEVEL {self.log_level!r} is not a logging level")

        if self.nonce_max_retries == 0:
            log_event(
                logging.getLogger(LOGGER_NAME), "config_warning", level=logging.WARNING,
                message="stale-nonce retries are unbounded; set CK_NONCE_MAX_RETRIES to cap them",
            )


def _sanity_check(cfg: Settings) -> None:
    """Log effective settings once at startup so overrides are obvious."""
    log_event(logging.getLogger(LOGGER_NAME), "config_loaded", **cfg.dump())
