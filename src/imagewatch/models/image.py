"""Image, version, layer and tag models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ImageStatus(str, Enum):
    """Lifecycle state of an image.

    MISSING -> SUBMITTED -> {FAILED_INSPECTION | SIZE} -> INSPECTED, with
    SITEMAP as the initial state of passively discovered images.
    """

    MISSING = "MISSING"
    SUBMITTED = "SUBMITTED"
    FAILED_INSPECTION = "FAILED_INSPECTION"
    SIZE = "SIZE"
    INSPECTED = "INSPECTED"
    SITEMAP = "SITEMAP"


class Tag(BaseModel):
    """A named pointer from an image to one of its versions."""

    model_config = {"frozen": True}

    image_name: str = Field(description="Owning image name")
    tag: str = Field(description="Tag name")
    sha: str = Field(description="Content identifier of the tagged version")


class ImageLayer(BaseModel):
    """One filesystem layer of an image version."""

    model_config = {"frozen": True}

    blob_sum: str = Field(default="", description="Blob reference in the registry")
    command: str = Field(default="", description="Human readable build command")
    download_size: int = Field(default=0, description="Compressed blob size in bytes")


class ImageVersion(BaseModel):
    """A single build of an image, identified by its content identifier.

    Size, layer and fingerprint fields are back-filled by the size phase;
    everything else is fixed when the version is first seen.
    """

    image_name: str = Field(description="Owning image name")
    sha: str = Field(description="Content identifier from the registry")
    author: str = Field(default="", description="Author from the build history")
    labels: str = Field(default="", description="Raw label set as JSON text")
    layer_count: int = Field(default=0, description="Number of layers")
    download_size: int = Field(default=0, description="Total compressed download size")
    created: datetime | None = Field(default=None, description="Build timestamp")
    layers: list[ImageLayer] = Field(default_factory=list, description="Layers in build order")
    fingerprint: str | None = Field(default=None, description="Hash of the layer commands")
    manifest: str = Field(default="", description="Raw manifest, cleared after the size phase")

    # Populated during inspection only; persisted as Tag rows
    tags: list[Tag] = Field(default_factory=list, description="Tags pointing at this version")

    @property
    def tag_names(self) -> list[str]:
        return [t.tag for t in self.tags]


class Image(BaseModel):
    """A repository on the hub, e.g. ``library/nginx`` or ``org/app``."""

    name: str = Field(description="namespace/name")
    status: ImageStatus = Field(default=ImageStatus.MISSING, description="Lifecycle state")
    latest: str | None = Field(default=None, description="Content identifier of the latest version")

    # Hub metadata
    description: str = Field(default="", description="Short description from the hub")
    is_private: bool = Field(default=False, description="Private repository")
    is_automated: bool = Field(default=False, description="Automated build repository")
    pull_count: int = Field(default=0, description="Pull count")
    star_count: int = Field(default=0, description="Star count")
    last_updated: datetime | None = Field(default=None, description="Last update reported by the hub")

    badge_count: int = Field(default=0, description="Number of badges available for this image")
    badges_installed: int = Field(default=0, description="Badges found in the hub full description")
    auth_token: str = Field(default="", description="Secret used in the inbound webhook URL")
    webhook_url: str = Field(default="", description="Inbound webhook that triggers reinspection")

    # Populated during inspection only
    versions: list[ImageVersion] = Field(default_factory=list, description="Versions found upstream")

    @property
    def tags(self) -> list[Tag]:
        return [t for v in self.versions for t in v.tags]
