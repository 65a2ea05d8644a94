"""Utility functions for imagewatch."""

from imagewatch.utils.hashing import compute_hash, generate_auth_token
from imagewatch.utils.logging import configure_logging, get_logger, log_context
from imagewatch.utils.errors import (
    ImageWatchError,
    ImageNotFoundError,
    ValidationError,
    ConfigurationError,
    ReconciliationError,
    StoreError,
    validate_image_name,
)
from imagewatch.utils.locks import RWLock
from imagewatch.utils.reference import display_name, is_official, page_url, parse_image_name
from imagewatch.utils.config import (
    ImageWatchConfig,
    RegistryConfig,
    DatabaseConfig,
    QueueConfig,
    NotificationConfig,
    SiteConfig,
    LoggingConfig,
    load_config,
    get_config,
    set_config,
)

__all__ = [
    # Hashing
    "compute_hash",
    "generate_auth_token",
    # Logging
    "configure_logging",
    "get_logger",
    "log_context",
    # Errors
    "ImageWatchError",
    "ImageNotFoundError",
    "ValidationError",
    "ConfigurationError",
    "ReconciliationError",
    "StoreError",
    "validate_image_name",
    # Locks
    "RWLock",
    # Names
    "display_name",
    "is_official",
    "page_url",
    "parse_image_name",
    # Config
    "ImageWatchConfig",
    "RegistryConfig",
    "DatabaseConfig",
    "QueueConfig",
    "NotificationConfig",
    "SiteConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "set_config",
]
