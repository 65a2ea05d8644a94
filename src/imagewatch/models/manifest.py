"""Registry manifest models (schema version 1, as served by the hub registry)."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ContainerConfig(BaseModel):
    """The part of a history entry's container config that we read."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cmd: list[str] | None = Field(default=None, alias="Cmd", description="Command that created the layer")


class V1Compatibility(BaseModel):
    """Decoded ``v1Compatibility`` blob of a history entry."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(default="", description="Layer/image identifier")
    throwaway: bool = Field(default=False, description="Layer does not change the filesystem")
    config: dict[str, Any] = Field(default_factory=dict, description="Image config")
    container_config: ContainerConfig = Field(default_factory=ContainerConfig)
    created: str = Field(default="", description="RFC 3339 creation time")
    author: str = Field(default="", description="Author")

    @property
    def labels(self) -> dict[str, str] | None:
        return (self.config or {}).get("Labels")


class HistoryEntry(BaseModel):
    """One history entry; the payload is JSON text inside JSON."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    v1_compatibility: str = Field(default="", alias="v1Compatibility")

    def decode(self) -> V1Compatibility:
        """Parse the embedded JSON payload.

        Raises:
            ValueError: If the payload is not valid JSON
        """
        return V1Compatibility.model_validate(json.loads(self.v1_compatibility))


class FsLayer(BaseModel):
    """A filesystem layer blob reference."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    blob_sum: str = Field(alias="blobSum")


class Manifest(BaseModel):
    """Image manifest. ``history`` and ``fs_layers`` are newest first."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    schema_version: int = Field(default=1, alias="schemaVersion")
    name: str = Field(default="")
    tag: str = Field(default="")
    history: list[HistoryEntry] = Field(default_factory=list)
    fs_layers: list[FsLayer] = Field(default_factory=list, alias="fsLayers")

    @classmethod
    def parse(cls, raw: bytes | str) -> "Manifest":
        """Parse manifest JSON.

        Raises:
            pydantic.ValidationError: If the document is malformed
        """
        return cls.model_validate_json(raw)
