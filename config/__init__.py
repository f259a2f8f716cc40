"""Configuration module for the Polymarket mempool copy trader."""
from . import copytrade_settings
from .app_config import AppConfig, ConfigError, ENV_TEMPLATE

__all__ = [
    "AppConfig",
    "ConfigError",
    "ENV_TEMPLATE",
    "copytrade_settings",
]
