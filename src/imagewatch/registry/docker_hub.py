"""Docker Hub registry client using token authentication."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from imagewatch.models.manifest import Manifest
from imagewatch.registry.base import (
    RateLimitedError,
    RegistryAuthError,
    RegistryCredentials,
    RegistryError,
    RegistryNotFoundError,
    TransientNetworkError,
)
from imagewatch.registry.ratelimit import RateLimiter
from imagewatch.utils.config import RegistryConfig
from imagewatch.utils.logging import get_logger
from imagewatch.utils.reference import parse_image_name

logger = get_logger(__name__)


class TokenAuthClient:
    """Registry client bound to one ``org/image`` repository.

    Holds the bearer token for the repository's pull scope and refreshes
    it once whenever the registry answers 401.

    Example:
        client = DockerHubRegistry().client_for("library/nginx")
        manifest, raw = client.get_manifest("latest")
        total, sizes = client.compute_download_size(manifest)
    """

    def __init__(
        self,
        org: str,
        image: str,
        http: httpx.Client,
        config: RegistryConfig | None = None,
        credentials: RegistryCredentials | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the client. No request is made until ``obtain_token``.

        Args:
            org: Repository namespace (``library`` for official images)
            image: Repository name
            http: Shared HTTP client
            config: Registry endpoints and timeouts
            credentials: Optional credentials for private repositories
            rate_limiter: Cooldown flag; a new one is created if not given
        """
        self.org = org
        self.image = image
        self._http = http
        self._config = config or RegistryConfig()
        self._credentials = credentials
        self.rate_limiter = rate_limiter or RateLimiter(self._config.rate_limit_delay)
        self._token = ""

    @property
    def repository(self) -> str:
        return f"{self.org}/{self.image}"

    @property
    def token_url(self) -> str:
        return (
            f"{self._config.auth_url}/token?service={self._config.service}"
            f"&scope=repository:{self.repository}:pull"
        )

    def obtain_token(self) -> str:
        """Fetch a fresh pull-scoped bearer token.

        Returns:
            The token

        Raises:
            RegistryAuthError: If the token service rejects the request
            TransientNetworkError: If the token service is unreachable
        """
        logger.debug("Getting auth token from %s", self.token_url)
        auth = self._credentials.as_basic_auth() if self._credentials else None

        try:
            response = self._http.get(self.token_url, auth=auth, timeout=self._config.timeout)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Error getting auth token from {self.token_url}: {e}") from e

        if not response.is_success:
            raise RegistryAuthError(
                f"Error getting auth token for {self.repository}: "
                f"{response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryAuthError(f"Invalid token response for {self.repository}: {e}") from e

        self._token = data.get("token") or data.get("access_token", "")
        logger.debug("Got new auth token for %s", self.repository)
        return self._token

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Make an authenticated request, re-authenticating once on 401."""
        headers = {"Authorization": f"Bearer {self._token}"}

        try:
            response = self._http.request(method, url, headers=headers, timeout=self._config.timeout, **kwargs)

            if response.status_code == 401:
                logger.debug("Unauthorized on first attempt for %s", url)
                self.obtain_token()
                headers["Authorization"] = f"Bearer {self._token}"
                response = self._http.request(
                    method, url, headers=headers, timeout=self._config.timeout, **kwargs
                )
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Error sending {method} {url}: {e}") from e

        return response

    def _check(self, response: httpx.Response, reference: str) -> None:
        if response.status_code == 200:
            return
        status = f"{response.status_code} {response.reason_phrase}"
        if response.status_code == 404:
            raise RegistryNotFoundError(reference)
        if response.status_code == 401:
            raise RegistryAuthError(f"Req failed for {reference}: {status}")
        if response.status_code == 429:
            raise RateLimitedError(f"Req failed for {reference}: {status}")
        raise RegistryError(f"Req failed for {reference}: {status}", status_code=response.status_code)

    def list_tags(self) -> list[str]:
        """List the tags of the repository.

        Returns:
            Tag names in registry order

        Raises:
            RegistryNotFoundError: If the repository does not exist
            RegistryAuthError: If authentication fails after a retry
            RegistryError: For other errors
        """
        url = f"{self._config.registry_url}/v2/{self.repository}/tags/list"
        logger.debug("Getting tags at URL %s", url)

        response = self._request("GET", url)
        self._check(response, self.repository)

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Error decoding tags for {self.repository}: {e}") from e
        return list(data.get("tags") or [])

    def get_manifest(self, tag: str) -> tuple[Manifest, bytes]:
        """Get the manifest for a tag.

        Args:
            tag: Tag name

        Returns:
            Tuple of (parsed manifest, raw manifest bytes)

        Raises:
            RegistryNotFoundError: If the tag has no manifest
            RegistryAuthError: If authentication fails after a retry
            RegistryError: For other errors
        """
        url = f"{self._config.registry_url}/v2/{self.repository}/manifests/{tag}"
        logger.debug("Getting manifest at URL %s", url)

        response = self._request("GET", url)
        self._check(response, f"{self.repository}:{tag}")

        raw = response.content
        try:
            return Manifest.parse(raw), raw
        except PydanticValidationError as e:
            raise RegistryError(f"Error decoding manifest for {self.repository}:{tag}: {e}") from e

    def get_blob_size(self, blob_sum: str) -> int:
        """Get the compressed size of a blob without downloading it.

        Args:
            blob_sum: Blob reference

        Returns:
            Size in bytes from the Content-Length header

        Raises:
            RateLimitedError: If the cooldown flag is set or the registry answers 429
            RegistryError: For other errors
        """
        if self.rate_limiter.is_limited():
            raise RateLimitedError(f"Rate limited, not probing blob {blob_sum}")

        url = f"{self._config.registry_url}/v2/{self.repository}/blobs/{blob_sum}"
        logger.debug("Getting blob at URL %s", url)

        response = self._request("HEAD", url)
        if response.status_code == 429:
            logger.info("Rate limited getting blob size for %s", self.repository)
            self.rate_limiter.try_trigger()
        self._check(response, f"{self.repository}@{blob_sum}")

        length = response.headers.get("Content-Length")
        try:
            return int(length)
        except (TypeError, ValueError) as e:
            raise RegistryError(f"Invalid Content-Length for blob {blob_sum}: {length!r}") from e

    def compute_download_size(self, manifest: Manifest) -> tuple[int, list[int]]:
        """Get the download size of an image.

        Only new blobs add to the total; a layer whose blob already
        appeared earlier in the manifest contributes 0.

        Args:
            manifest: Parsed manifest

        Returns:
            Tuple of (total size, per-layer sizes aligned with ``fs_layers``)

        Raises:
            RateLimitedError: If any blob request is rate limited
            RegistryError: If any blob request fails
        """
        if self.rate_limiter.is_limited():
            raise RateLimitedError(f"Rate limited, not sizing {self.repository}")

        seen: dict[str, int] = {}
        layer_sizes: list[int] = []
        total = 0

        for layer in manifest.fs_layers:
            if layer.blob_sum in seen:
                layer_sizes.append(0)
                continue

            try:
                size = self.get_blob_size(layer.blob_sum)
            except RegistryError as e:
                logger.info("Error getting blob size for %s blob %s: %s", self.repository, layer.blob_sum, e)
                raise

            seen[layer.blob_sum] = size
            layer_sizes.append(size)
            total += size

        return total, layer_sizes


class DockerHubRegistry:
    """Hands out ``TokenAuthClient`` instances that share one HTTP client.

    Example:
        registry = DockerHubRegistry()
        client = registry.client_for("org/app", RegistryCredentials(username="u", password="p"))
        tags = client.list_tags()
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            config: Registry endpoints and timeouts
            transport: Optional httpx transport, used by tests
        """
        self.config = config or RegistryConfig()
        self._http = httpx.Client(
            timeout=self.config.timeout,
            transport=transport,
            follow_redirects=True,
        )

    def client_for(
        self,
        image_name: str,
        credentials: RegistryCredentials | None = None,
    ) -> TokenAuthClient:
        """Create a client for a repository and authenticate it.

        Args:
            image_name: Image name, e.g. ``library/nginx`` or ``org/app``
            credentials: Optional credentials for private repositories

        Returns:
            An authenticated client

        Raises:
            RegistryAuthError: If a token cannot be obtained
            TransientNetworkError: If the token service is unreachable
        """
        org, image, _ = parse_image_name(image_name)
        client = TokenAuthClient(org, image, self._http, config=self.config, credentials=credentials)
        try:
            client.obtain_token()
        except RegistryError:
            logger.error("Failed to get auth token for %s/%s", org, image)
            raise
        return client

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "DockerHubRegistry":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
