"""Configuration loading and validation module."""

from bookstore.config.errors import (
    ConfigError,
    ConfigFileFormatError,
    ConfigFileNotFoundError,
    ConfigValidationError,
)
from bookstore.config.loader import deep_merge, env_overrides, load_config
from bookstore.config.models import AppSettings, LoggingSettings, MongoDbSettings

__all__ = [
    "AppSettings",
    "ConfigError",
    "ConfigFileFormatError",
    "ConfigFileNotFoundError",
    "ConfigValidationError",
    "LoggingSettings",
    "MongoDbSettings",
    "deep_merge",
    "env_overrides",
    "load_config",
]
