"""
Configuration package.

This package contains configuration loading, validation, and YAML overrides.
"""

from chankura_gateway.config.config import ConfigError, Settings
from chankura_gateway.config.overrides import load_overrides

__all__ = [
    "ConfigError",
    "Settings",
    "load_overrides",
]
