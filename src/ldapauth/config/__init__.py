"""Configuration module for ldapauth."""

from .loader import load_config, validate_config
from .models import (
    DirectoryConfig,
    DispatcherConfig,
    SearchConfig,
    LoggingConfig,
    Config,
)

__all__ = [
    "load_config",
    "validate_config",
    "DirectoryConfig",
    "DispatcherConfig",
    "SearchConfig",
    "LoggingConfig",
    "Config",
]
