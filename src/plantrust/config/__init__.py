"""Application configuration helpers."""

from __future__ import annotations

from .errors import ConfigurationError
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .trust import DEFAULT_TRUST_CONFIG, TrustConfig, get_trust_config

__all__ = [
    "DEFAULT_TRUST_CONFIG",
    "ConfigurationError",
    "DatabaseConfig",
    "StorageConfig",
    "TrustConfig",
    "configure_logging",
    "get_database_config",
    "get_storage_config",
    "get_trust_config",
]
