"""Shared test fixtures for imagewatch tests."""

import json
import re
from typing import Any, Callable

import httpx
import pytest

from imagewatch.core.inspector import Inspector
from imagewatch.models.image import ImageLayer, ImageStatus, ImageVersion, Tag
from imagewatch.queue.memory import MemoryQueueService
from imagewatch.registry.docker_hub import DockerHubRegistry
from imagewatch.registry.hub import HubInfoService
from imagewatch.storage.sql import SqlStore
from imagewatch.core.fingerprint import fingerprint_layers
from imagewatch.utils.config import ImageWatchConfig, RegistryConfig, SiteConfig

REGISTRY_URL = "https://registry.test"
AUTH_URL = "https://auth.test"
HUB_URL = "https://hub.test"
SITE_URL = "https://site.test"
HOOKS_URL = "https://hooks.test"


def make_manifest(
    name: str,
    tag: str,
    layers: list[tuple[str, list[str] | None, str]],
    created: str = "2016-06-01T10:00:00.123456789Z",
    author: str = "someone",
    labels: dict[str, str] | None = None,
) -> bytes:
    """Build a schema-1 manifest.

    ``layers`` is given in build order as (layer id, Cmd array, blob sum);
    the manifest lists them newest first, and the id of the last layer is
    the version identifier.
    """
    history = []
    fs_layers = []
    for i, (layer_id, cmd, blob_sum) in enumerate(reversed(layers)):
        v1c: dict[str, Any] = {
            "id": layer_id,
            "container_config": {"Cmd": cmd},
            "created": created,
        }
        if i == 0:
            v1c["author"] = author
            v1c["config"] = {"Labels": labels}
        history.append({"v1Compatibility": json.dumps(v1c)})
        fs_layers.append({"blobSum": blob_sum})

    return json.dumps(
        {
            "schemaVersion": 1,
            "name": name,
            "tag": tag,
            "history": history,
            "fsLayers": fs_layers,
        }
    ).encode()


class FakeDockerHub:
    """Registry, token service and hub API behind one httpx.MockTransport."""

    def __init__(self) -> None:
        self.manifests: dict[str, dict[str, bytes]] = {}
        self.blobs: dict[str, int] = {}
        self.hub_info: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.token_count = 0
        self.token_status = 200
        self.unauthorized_responses = 0
        self.tags_status: int | None = None
        self.blob_status: int | None = None
        self.missing_manifests: set[tuple[str, str]] = set()

    def add_image(self, repository: str, tags: dict[str, bytes], last_updated: str = "2016-06-02T00:00:00Z") -> None:
        self.manifests[repository] = dict(tags)
        namespace, name = repository.split("/", 1)
        self.hub_info[repository] = {
            "name": name,
            "namespace": namespace,
            "description": f"{name} image",
            "is_private": False,
            "is_automated": False,
            "last_updated": last_updated,
            "pull_count": 10,
            "star_count": 2,
        }

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def count(self, method: str, fragment: str) -> int:
        return sum(1 for r in self.requests if r.method == method and fragment in r.url.path)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        path = request.url.path

        if host == "auth.test":
            if self.token_status != 200:
                return httpx.Response(self.token_status)
            self.token_count += 1
            return httpx.Response(200, json={"token": f"tok-{self.token_count}"})

        if host == "hub.test":
            return self._handle_hub(request, path)

        if host == "registry.test":
            if self.unauthorized_responses > 0:
                self.unauthorized_responses -= 1
                return httpx.Response(401)
            return self._handle_registry(request, path)

        return httpx.Response(404)

    def _handle_hub(self, request: httpx.Request, path: str) -> httpx.Response:
        if path == "/v2/users/login/":
            body = json.loads(request.content)
            if body.get("password") == "secret":
                return httpx.Response(200, json={"token": "jwt-token"})
            return httpx.Response(401)

        match = re.match(r"^/v2/repositories/([^/]+)/([^/]+)/$", path)
        if match:
            repository = f"{match.group(1)}/{match.group(2)}"
            if repository in self.hub_info:
                return httpx.Response(200, json=self.hub_info[repository])
        return httpx.Response(404, json={"detail": "Object not found"})

    def _handle_registry(self, request: httpx.Request, path: str) -> httpx.Response:
        match = re.match(r"^/v2/([^/]+/[^/]+)/(tags/list|manifests/([^/]+)|blobs/([^/]+))$", path)
        if not match:
            return httpx.Response(404)

        repository = match.group(1)
        if repository not in self.manifests:
            return httpx.Response(404)

        if match.group(2) == "tags/list":
            if self.tags_status is not None:
                return httpx.Response(self.tags_status)
            return httpx.Response(200, json={"name": repository, "tags": list(self.manifests[repository])})

        if match.group(3) is not None:
            tag = match.group(3)
            if (repository, tag) in self.missing_manifests or tag not in self.manifests[repository]:
                return httpx.Response(404)
            return httpx.Response(200, content=self.manifests[repository][tag])

        blob = match.group(4)
        if self.blob_status is not None:
            return httpx.Response(self.blob_status)
        if blob not in self.blobs:
            return httpx.Response(404)
        return httpx.Response(200, headers={"Content-Length": str(self.blobs[blob])})


@pytest.fixture
def registry_config() -> RegistryConfig:
    """Registry configuration pointing at the fake hosts."""
    return RegistryConfig(
        registry_url=REGISTRY_URL,
        auth_url=AUTH_URL,
        hub_url=HUB_URL,
        service="registry.test",
        timeout=5.0,
        rate_limit_delay=0.2,
    )


@pytest.fixture
def config(registry_config: RegistryConfig) -> ImageWatchConfig:
    """Full configuration for tests."""
    return ImageWatchConfig(
        registry=registry_config,
        site=SiteConfig(site_url=SITE_URL, webhook_url=HOOKS_URL),
    )


@pytest.fixture
def fake_hub() -> FakeDockerHub:
    """Fake registry, token service and hub."""
    return FakeDockerHub()


@pytest.fixture
def manifest_factory() -> Callable[..., bytes]:
    """Factory for schema-1 manifests."""
    return make_manifest


@pytest.fixture
def store() -> SqlStore:
    """SQLite in-memory store with all tables created."""
    store = SqlStore("sqlite://")
    store.create_all()
    return store


@pytest.fixture
def queue() -> MemoryQueueService:
    """In-memory queues."""
    return MemoryQueueService()


@pytest.fixture
def docker_registry(registry_config: RegistryConfig, fake_hub: FakeDockerHub) -> DockerHubRegistry:
    """Registry client talking to the fake hub."""
    registry = DockerHubRegistry(registry_config, transport=fake_hub.transport)
    yield registry
    registry.close()


@pytest.fixture
def hub_service(registry_config: RegistryConfig, fake_hub: FakeDockerHub) -> HubInfoService:
    """Hub metadata client talking to the fake hub."""
    service = HubInfoService(registry_config, transport=fake_hub.transport)
    yield service
    service.close()


@pytest.fixture
def inspector(store, docker_registry, hub_service, queue, config) -> Inspector:
    """Inspector wired to the fakes."""
    return Inspector(store, docker_registry, hub_service, queue, config=config)


@pytest.fixture
def seed_version(store: SqlStore) -> Callable[..., ImageVersion]:
    """Store a sized version with layers built from commands, and its tags."""

    def seed(
        image_name: str,
        sha: str,
        commands: list[str],
        tags: tuple[str, ...] = (),
        is_private: bool = False,
    ) -> ImageVersion:
        image = store.get_or_create_image(image_name)
        image.status = ImageStatus.INSPECTED
        image.is_private = is_private
        store.save_image(image)

        layers = [ImageLayer(blob_sum=f"sha256:{image_name}-{i}", command=c, download_size=100) for i, c in enumerate(commands)]
        version = ImageVersion(
            image_name=image_name,
            sha=sha,
            layer_count=len(layers),
            download_size=100 * len(layers),
            layers=layers,
            fingerprint=fingerprint_layers(layers),
        )
        store.save_version(version)

        with store.unit_of_work() as uow:
            for tag in tags:
                uow.insert_tag(Tag(image_name=image_name, tag=tag, sha=sha))
            uow.commit()
        return version

    return seed
