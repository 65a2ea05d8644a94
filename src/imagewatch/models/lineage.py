"""Lineage models: parent and identical version matches, and build provenance."""

from pydantic import BaseModel, Field

from imagewatch.models.image import ImageLayer, ImageVersion


class License(BaseModel):
    """License declared in a version's ``org.label-schema.license`` label."""

    model_config = {"frozen": True}

    code: str = Field(description="License code as labelled, e.g. MIT")
    url: str = Field(default="", description="License text URL when the code is a known one")


class VersionControl(BaseModel):
    """Source commit declared in a version's ``org.label-schema.vcs-*`` labels."""

    model_config = {"frozen": True}

    type: str = Field(default="git", description="Version control system")
    url: str = Field(description="Link to the tree at the labelled commit")
    commit: str = Field(description="Commit reference")


class LineageMatch(BaseModel):
    """Another version whose layers match some or all of ours."""

    model_config = {"frozen": True}

    image_name: str = Field(description="Matched image name")
    sha: str = Field(description="Matched version identifier")
    tags: list[str] = Field(default_factory=list, description="Tags on the matched version")
    page_url: str = Field(default="", description="Display URL of the matched image")
    layers: list[ImageLayer] = Field(default_factory=list, description="Layers that matched")


class VersionLineage(BaseModel):
    """Lineage view of one version."""

    model_config = {"frozen": True}

    version: ImageVersion = Field(description="The version being described")
    parents: list[LineageMatch] = Field(default_factory=list, description="Images this one is built on")
    identical: list[LineageMatch] = Field(default_factory=list, description="Images with the same layers")
    layers: list[ImageLayer] = Field(
        default_factory=list,
        description="Layers not explained by a parent",
    )
    license: License | None = Field(default=None, description="License from the version's labels")
    vcs: VersionControl | None = Field(default=None, description="Source commit from the version's labels")
