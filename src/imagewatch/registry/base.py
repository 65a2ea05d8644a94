"""Base registry protocol and types."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from imagewatch.models.manifest import Manifest
from imagewatch.utils.errors import ImageWatchError


class RegistryCredentials(BaseModel):
    """Username and password for a private repository."""

    model_config = {"frozen": True}

    username: str = Field(default="", description="Registry username")
    password: str = Field(default="", description="Registry password or access token")

    @property
    def is_set(self) -> bool:
        return bool(self.username and self.password)

    def as_basic_auth(self) -> tuple[str, str] | None:
        return (self.username, self.password) if self.is_set else None


class RegistryError(ImageWatchError):
    """Base exception for registry operations."""

    def __init__(self, message: str, code: str = "REGISTRY_ERROR", status_code: int | None = None) -> None:
        details = {"status_code": status_code} if status_code is not None else {}
        super().__init__(message, code=code, details=details)
        self.status_code = status_code


class RegistryAuthError(RegistryError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication failed", status_code: int | None = 401) -> None:
        super().__init__(message, code="AUTH_ERROR", status_code=status_code)


class RegistryNotFoundError(RegistryError):
    """Repository, manifest or blob not found."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Not found: {reference}", code="NOT_FOUND", status_code=404)
        self.reference = reference


class RateLimitedError(RegistryError):
    """The registry asked us to back off."""

    def __init__(self, message: str = "Rate limited") -> None:
        super().__init__(message, code="RATE_LIMITED", status_code=429)


class TransientNetworkError(RegistryError):
    """The request did not complete (timeout, connection failure)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="NETWORK_ERROR")


@runtime_checkable
class RepositoryClient(Protocol):
    """Protocol for a client bound to a single repository.

    The inspector only needs tags, manifests and blob sizes; anything
    that provides these can stand in for the hub registry.
    """

    def list_tags(self) -> list[str]:
        """List all tags of the repository.

        Raises:
            RegistryNotFoundError: If the repository does not exist
            RegistryAuthError: If authentication fails
            RegistryError: For other errors
        """
        ...

    def get_manifest(self, tag: str) -> tuple[Manifest, bytes]:
        """Get the parsed manifest for a tag along with its raw bytes.

        Raises:
            RegistryNotFoundError: If the tag has no manifest
            RegistryAuthError: If authentication fails
            RegistryError: For other errors
        """
        ...

    def compute_download_size(self, manifest: Manifest) -> tuple[int, list[int]]:
        """Get the total download size and per-layer sizes of a manifest.

        Raises:
            RateLimitedError: If the registry is throttling requests
            RegistryError: For other errors
        """
        ...


@runtime_checkable
class Registry(Protocol):
    """Protocol for registries that hand out repository clients."""

    def client_for(self, image_name: str, credentials: RegistryCredentials | None = None) -> RepositoryClient:
        """Create an authenticated client for one repository.

        Args:
            image_name: Image name such as ``library/nginx``
            credentials: Optional credentials for private repositories

        Raises:
            RegistryAuthError: If a token cannot be obtained
            TransientNetworkError: If the token service is unreachable
        """
        ...
