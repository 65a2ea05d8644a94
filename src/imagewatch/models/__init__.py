"""Data models for imagewatch.

All models are Pydantic BaseModel. Value types (tags, layers, changesets,
lineage matches) are frozen; images, versions and delivery tasks are
records that the pipeline updates in place.
"""

from imagewatch.models.image import (
    Image,
    ImageLayer,
    ImageStatus,
    ImageVersion,
    Tag,
)
from imagewatch.models.manifest import (
    ContainerConfig,
    FsLayer,
    HistoryEntry,
    Manifest,
    V1Compatibility,
)
from imagewatch.models.changeset import Changeset
from imagewatch.models.notification import NotificationMessage, Subscription
from imagewatch.models.hub import HubInfo
from imagewatch.models.lineage import License, LineageMatch, VersionControl, VersionLineage
from imagewatch.models.viewer import ANONYMOUS, Anonymous, Authenticated, Viewer
from imagewatch.models.common import OperationError

__all__ = [
    # Image
    "Image",
    "ImageLayer",
    "ImageStatus",
    "ImageVersion",
    "Tag",
    # Manifest
    "ContainerConfig",
    "FsLayer",
    "HistoryEntry",
    "Manifest",
    "V1Compatibility",
    # Changes
    "Changeset",
    "NotificationMessage",
    "Subscription",
    # Hub
    "HubInfo",
    # Lineage
    "License",
    "LineageMatch",
    "VersionControl",
    "VersionLineage",
    # Viewer
    "ANONYMOUS",
    "Anonymous",
    "Authenticated",
    "Viewer",
    # Common
    "OperationError",
]
