"""
Utility helpers.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


def to_decimal(raw: Any) -> Decimal:
    """Parse a venue numeric field (usually a string) into a Decimal."""
    if raw is None or raw == "":
        raise ValueError("missing numeric value")
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {raw!r}") from exc


def to_decimal_or_none(raw: Any) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    return to_decimal(raw)


def parse_timestamp(raw: str) -> datetime:
    """ISO-8601 venue timestamp -> aware UTC datetime. ``Z`` suffix accepted."""
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def precision_to_tick(precision: int) -> Decimal:
    """Decimal places -> minimum price increment (2 -> 0.01)."""
    return Decimal(1).scaleb(-int(precision))
