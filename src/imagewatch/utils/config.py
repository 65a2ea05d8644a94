"""Configuration file support for imagewatch."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from imagewatch.utils.errors import ConfigurationError


class RegistryConfig(BaseModel):
    """Registry and hub endpoints."""

    registry_url: str = Field(default="https://registry.hub.docker.com", description="Registry API base URL")
    auth_url: str = Field(default="https://auth.docker.io", description="Token service base URL")
    service: str = Field(default="registry.docker.io", description="Token service name")
    hub_url: str = Field(default="https://hub.docker.com", description="Hub metadata API base URL")
    timeout: float = Field(default=10.0, description="Request timeout in seconds")
    rate_limit_delay: float = Field(default=10.0, description="Cooldown after a 429 in seconds")


class DatabaseConfig(BaseModel):
    """Database configuration."""

    url: str = Field(default="sqlite:///imagewatch.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Log SQL statements")


class QueueConfig(BaseModel):
    """Work queue configuration."""

    backend: Literal["memory", "sqs"] = Field(default="memory", description="Queue backend")
    inspect_queue_url: str | None = Field(default=None, description="SQS queue for metadata inspection")
    size_queue_url: str | None = Field(default=None, description="SQS queue for size inspection")
    notification_queue_url: str | None = Field(default=None, description="SQS queue for webhook delivery")
    region: str | None = Field(default=None, description="AWS region")
    wait_time_seconds: int = Field(default=5, description="SQS long-poll wait time")
    poll_interval: float = Field(default=0.25, description="Seconds between empty polls")


class NotificationConfig(BaseModel):
    """Webhook delivery configuration."""

    max_attempts: int = Field(default=5, description="Delivery attempts before giving up")
    timeout: float = Field(default=10.0, description="Webhook request timeout in seconds")


class SiteConfig(BaseModel):
    """Public site settings used to build URLs."""

    site_url: str = Field(default="https://imagewatch.example.com", description="Base URL of image pages")
    webhook_url: str = Field(default="https://hooks.imagewatch.example.com", description="Base URL for inbound webhooks")
    official_namespace: str = Field(default="library", description="Namespace of official images")
    badge_host: str = Field(
        default="images.imagewatch.example.com",
        description="Host serving badge images, counted in hub descriptions",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    structured: bool = Field(default=False, description="Use structured log format")


class ImageWatchConfig(BaseModel):
    """Main configuration for imagewatch."""

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    site: SiteConfig = Field(default_factory=SiteConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# Environment variable -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "IMAGEWATCH_DATABASE_URL": ("database", "url"),
    "IMAGEWATCH_SITE_URL": ("site", "site_url"),
    "IMAGEWATCH_WEBHOOK_URL": ("site", "webhook_url"),
    "IMAGEWATCH_QUEUE_BACKEND": ("queue", "backend"),
    "IMAGEWATCH_LOG_LEVEL": ("logging", "level"),
}


def get_config_paths() -> list[Path]:
    """Get possible configuration file paths.

    Returns:
        List of paths to check for configuration files
    """
    paths = [
        Path.cwd() / ".imagewatch.yaml",
        Path.cwd() / "imagewatch.yaml",
        Path.home() / ".imagewatch" / "config.yaml",
    ]

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        paths.append(Path(xdg_config) / "imagewatch" / "config.yaml")

    return paths


def load_config(config_path: Path | str | None = None) -> ImageWatchConfig:
    """Load configuration from file, then apply environment overrides.

    Args:
        config_path: Explicit path to config file. If None, searches default locations.

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If an explicit file is missing or any file is invalid
    """
    data: dict = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
        data = _read_config_file(path)
    else:
        for path in get_config_paths():
            if path.exists():
                data = _read_config_file(path)
                break

    for env_name, (section, field) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[field] = value

    try:
        return ImageWatchConfig.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _read_config_file(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


_config: ImageWatchConfig | None = None


def get_config() -> ImageWatchConfig:
    """Get the global configuration instance, loading it on first call."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: ImageWatchConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
