"""
Infrastructure package.

This package contains logging configuration and nonce management. The
transport, rate monitor and scheduler are imported from their own modules.
"""

from chankura_gateway.infra.logging_cfg import build_logger, log_event
from chankura_gateway.infra.nonce import NonceCounter

__all__ = [
    "build_logger",
    "log_event",
    "NonceCounter",
]
