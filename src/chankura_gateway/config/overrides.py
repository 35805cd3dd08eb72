"""Load settings overrides from YAML.

Optional file path via env `CK_CONFIG_FILE`, default `configs/chankura.yaml`.
Keys are Settings field names; Settings.with_overrides rejects unknown keys
with ConfigError.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml


def load_overrides(path: str | None = None) -> Dict[str, Any]:
    if path is None:
        path = os.getenv("CK_CONFIG_FILE", "configs/chankura.yaml")
    p = Path(path)
    if not p.exists():
        return {}
    with p.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{p}: expected a mapping at top level, got {type(data).__name__}")
    return {str(k): v for k, v in data.items()}
