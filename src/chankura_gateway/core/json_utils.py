"""
Fast JSON helpers backed by orjson.

Venue bodies and structured log lines both go through here. Decimals,
datetimes and enums are encoded as strings so canonical records can be
logged without conversion.

Usage:
    from chankura_gateway.core.json_utils import dumps, loads

    log.info(dumps({"event": "fill", "px": Decimal("100.5")}))
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import orjson


def _default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def dumps(obj: Any) -> str:
    """Encode to str."""
    return orjson.dumps(obj, default=_default).decode("utf-8")


def loads(s: str | bytes) -> Any:
    """Decode; raises ``orjson.JSONDecodeError`` (a ``ValueError``)."""
    return orjson.loads(s)
