"""Configuration module for revbench."""

from . import settings
from .loader import load_config, parse_config
from .settings import reload_settings

__all__ = [
    "load_config",
    "parse_config",
    "reload_settings",
    "settings",
]
