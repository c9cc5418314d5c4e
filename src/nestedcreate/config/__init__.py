"""Application configuration helpers."""

from __future__ import annotations

from .env import int_env_var
from .errors import ConfigurationError
from .limits import (
    DEFAULT_MAX_BULK_ROWS,
    DEFAULT_MAX_LAYERS,
    DEFAULT_PARAM_LIMIT,
    WriteLimits,
    get_write_limits,
)
from .logging import configure_logging
from .storage import DatabaseConfig, data_dir, get_database_config

__all__ = [
    "DEFAULT_MAX_BULK_ROWS",
    "DEFAULT_MAX_LAYERS",
    "DEFAULT_PARAM_LIMIT",
    "ConfigurationError",
    "DatabaseConfig",
    "WriteLimits",
    "configure_logging",
    "data_dir",
    "get_database_config",
    "get_write_limits",
    "int_env_var",
]
