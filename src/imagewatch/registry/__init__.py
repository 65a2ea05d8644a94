"""Registry clients for imagewatch."""

from imagewatch.registry.base import (
    RateLimitedError,
    Registry,
    RegistryAuthError,
    RegistryCredentials,
    RegistryError,
    RegistryNotFoundError,
    RepositoryClient,
    TransientNetworkError,
)
from imagewatch.registry.docker_hub import DockerHubRegistry, TokenAuthClient
from imagewatch.registry.hub import HubInfoService
from imagewatch.registry.ratelimit import RateLimiter

__all__ = [
    "DockerHubRegistry",
    "HubInfoService",
    "RateLimitedError",
    "RateLimiter",
    "Registry",
    "RegistryAuthError",
    "RegistryCredentials",
    "RegistryError",
    "RegistryNotFoundError",
    "RepositoryClient",
    "TokenAuthClient",
    "TransientNetworkError",
]
