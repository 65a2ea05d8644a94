"""Hub metadata service (``/v2/repositories``)."""

from __future__ import annotations

import httpx
from pydantic import ValidationError as PydanticValidationError

from imagewatch.models.hub import HubInfo
from imagewatch.registry.base import (
    RegistryAuthError,
    RegistryCredentials,
    RegistryError,
    TransientNetworkError,
)
from imagewatch.utils.config import RegistryConfig
from imagewatch.utils.logging import get_logger
from imagewatch.utils.reference import parse_image_name

logger = get_logger(__name__)


class HubInfoService:
    """Fetches repository summaries (description, counts, last update)."""

    def __init__(
        self,
        config: RegistryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or RegistryConfig()
        self._http = httpx.Client(timeout=self.config.timeout, transport=transport)

    def login(self, credentials: RegistryCredentials) -> str:
        """Log in to the hub API.

        Returns:
            JWT for the ``Authorization`` header

        Raises:
            RegistryAuthError: If the credentials are rejected
            TransientNetworkError: If the hub is unreachable
        """
        url = f"{self.config.hub_url}/v2/users/login/"
        logger.debug("Logging into %s", url)
        try:
            response = self._http.post(
                url,
                json={"username": credentials.username, "password": credentials.password},
            )
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Error making login request: {e}") from e

        if response.status_code != 200:
            raise RegistryAuthError("Incorrect credentials", status_code=response.status_code)

        try:
            return response.json().get("token", "")
        except ValueError as e:
            raise RegistryAuthError(f"Invalid login response: {e}") from e

    def info(self, image_name: str, credentials: RegistryCredentials | None = None) -> HubInfo:
        """Get the repository summary for an image.

        Args:
            image_name: Image name, e.g. ``library/nginx``
            credentials: Logs in first when given

        Returns:
            Repository summary

        Raises:
            RegistryError: If the hub does not answer 200 or the body does
                not describe the repository
        """
        org, image, _ = parse_image_name(image_name)
        url = f"{self.config.hub_url}/v2/repositories/{org}/{image}/"
        logger.debug("Getting hub info from %s", url)

        headers = {}
        if credentials is not None and credentials.is_set:
            headers["Authorization"] = f"JWT {self.login(credentials)}"

        try:
            response = self._http.get(url, headers=headers)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Error getting hub info from {url}: {e}") from e

        if response.status_code != 200:
            raise RegistryError(
                f"Error getting hub info for {org}/{image}: {response.status_code}",
                status_code=response.status_code,
            )

        # A 200 can carry a body that is not a repository at all
        body = response.text
        if "name" not in body and image not in body:
            raise RegistryError(f"Failed to get hub info for {org}/{image}")

        try:
            return HubInfo.model_validate_json(body)
        except PydanticValidationError as e:
            raise RegistryError(f"Error decoding hub info for {org}/{image}: {e}") from e

    def close(self) -> None:
        self._http.close()
