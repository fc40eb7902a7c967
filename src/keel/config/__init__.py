"""
Configuration management.

Configuration file parsing, environment resolution and typed migration settings.
"""

from keel.config.loader import Config, load_config
from keel.config.resolver import resolve_config
from keel.config.settings import MigrationSettings

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
    "MigrationSettings",
]
