"""Persistence protocols used by the inspection pipeline."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable

from imagewatch.models.image import Image, ImageVersion, Tag
from imagewatch.models.notification import NotificationMessage, Subscription
from imagewatch.models.viewer import Viewer
from imagewatch.secrets import EncryptedCredential


@runtime_checkable
class UnitOfWork(Protocol):
    """One transaction over an image, its versions and its tags.

    Nothing is visible to other readers until ``commit``; leaving the
    context without committing rolls back.
    """

    def load_tags(self, image_name: str) -> list[Tag]:
        ...

    def save_image(self, image: Image) -> None:
        ...

    def upsert_version(self, version: ImageVersion) -> None:
        ...

    def update_tag(self, tag: Tag) -> None:
        ...

    def insert_tag(self, tag: Tag) -> None:
        ...

    def delete_tag(self, tag: Tag) -> None:
        ...

    def get_subscriptions(self, image_name: str) -> list[Subscription]:
        ...

    def save_notification_message(self, message: NotificationMessage) -> NotificationMessage:
        """Stage a delivery task so it commits together with the tag changes."""
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


@runtime_checkable
class Store(Protocol):
    """Everything the core needs from the database."""

    def get_or_create_image(self, image_name: str) -> Image:
        """Get an image, creating a MISSING record if it is not known yet."""
        ...

    def get_image(self, image_name: str) -> Image:
        """Get an image.

        Raises:
            ImageNotFoundError: If the image is not known
        """
        ...

    def save_image(self, image: Image) -> None:
        """Save the image row only (no versions or tags)."""
        ...

    def unit_of_work(self) -> AbstractContextManager[UnitOfWork]:
        ...

    def get_versions_by_fingerprint(self, fingerprint: str, sha: str, image_name: str) -> list[ImageVersion]:
        """Get versions sharing a fingerprint, excluding ``(image_name, sha)`` itself."""
        ...

    def get_version(self, image_name: str, sha: str) -> ImageVersion:
        """Get one version.

        Raises:
            ImageNotFoundError: If the version is not known
        """
        ...

    def get_versions_with_manifests(self, image_name: str) -> list[ImageVersion]:
        """Get versions whose raw manifest has not been processed yet."""
        ...

    def version_needs_size_or_layers(self, version: ImageVersion) -> bool:
        ...

    def save_version(self, version: ImageVersion) -> None:
        ...

    def get_tag_names(self, image_name: str, sha: str) -> list[str]:
        ...

    def get_image_for_viewer(self, image_name: str, viewer: Viewer) -> Image | None:
        """Get an image if the viewer may see it, or None for a private image they cannot.

        Raises:
            ImageNotFoundError: If the image is not known
        """
        ...

    def get_registry_credentials(self, image_name: str) -> list[EncryptedCredential]:
        """Get stored logins of users who have permission on the image."""
        ...

    def get_subscriptions(self, image_name: str) -> list[Subscription]:
        ...

    def save_notification_message(self, message: NotificationMessage) -> NotificationMessage:
        """Insert or update a delivery task, returning it with its id set."""
        ...

    def get_notification_message(self, message_id: int) -> NotificationMessage:
        """Get a delivery task.

        Raises:
            ImageWatchError: If no message has this id
        """
        ...

    def get_unqueued_notification_messages(self, image_name: str) -> list[NotificationMessage]:
        """Get saved delivery tasks for the image that were never handed to the queue."""
        ...

    def mark_notification_queued(self, message_id: int) -> None:
        ...
