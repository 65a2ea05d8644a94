"""Inspection pipeline: hub metadata, registry versions, tag changes and sizes."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, Field

from imagewatch.core.fingerprint import fingerprint_layers
from imagewatch.core.history import layers_from_manifest, version_from_manifest
from imagewatch.core.labels import count_badges
from imagewatch.core.notifications import NotificationDispatcher
from imagewatch.core.reconcile import TagReconciler
from imagewatch.models.changeset import Changeset
from imagewatch.models.hub import HubInfo
from imagewatch.models.image import Image, ImageStatus, ImageVersion, Tag
from imagewatch.models.manifest import Manifest
from imagewatch.models.viewer import ANONYMOUS, Authenticated, Viewer
from imagewatch.queue.base import QueueService, WorkQueue
from imagewatch.registry.base import (
    RateLimitedError,
    Registry,
    RegistryAuthError,
    RegistryCredentials,
    RegistryError,
    RegistryNotFoundError,
)
from imagewatch.secrets import CredentialDecrypter, PlaintextDecrypter, decrypt_credential
from imagewatch.storage.base import Store
from imagewatch.utils.config import ImageWatchConfig
from imagewatch.utils.errors import ImageNotFoundError, ImageWatchError
from imagewatch.utils.hashing import generate_auth_token
from imagewatch.utils.logging import get_logger
from imagewatch.utils.timeutil import utc_naive

logger = get_logger(__name__)

UNAUTHORIZED_MARKER = "401 Unauthorized"

# Statuses from which a submission queues the image again
RESUBMITTABLE = {ImageStatus.SITEMAP, ImageStatus.MISSING, ImageStatus.FAILED_INSPECTION}


class HubService(Protocol):
    def info(self, image_name: str, credentials: RegistryCredentials | None = None) -> HubInfo:
        ...


class InspectionResult(BaseModel):
    """Outcome of one pass over an image."""

    model_config = {"frozen": True}

    image_name: str = Field(description="Image that was processed")
    status: ImageStatus | None = Field(default=None, description="Status after the pass, None if skipped")
    changed: bool = Field(default=False, description="Whether anything was written")
    changeset: Changeset | None = Field(default=None, description="Tag changes, for metadata inspections")


class Inspector:
    """Runs the inspection state machine for images.

    ``inspect`` refreshes metadata, versions and tags and hands changed
    images on to the size queue; ``inspect_size`` later fills in download
    sizes, layers and fingerprints from the stored manifests.

    Example:
        inspector = Inspector(store, DockerHubRegistry(), HubInfoService(), MemoryQueueService())
        result = inspector.inspect("library/nginx")
        if result.changeset and not result.changeset.is_empty:
            inspector.inspect_size("library/nginx")
    """

    def __init__(
        self,
        store: Store,
        registry: Registry,
        hub: HubService,
        queue: QueueService,
        decrypter: CredentialDecrypter | None = None,
        config: ImageWatchConfig | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.hub = hub
        self.queue = queue
        self.decrypter = decrypter or PlaintextDecrypter()
        self.config = config or ImageWatchConfig()
        self.dispatcher = NotificationDispatcher(store, queue)
        self.reconciler = TagReconciler(store, self.config.site, dispatcher=self.dispatcher)

    def _credentials(self, image_name: str, user_id: int | None = None) -> RegistryCredentials | None:
        """Decrypt the first stored login with access to the image, if any."""
        try:
            stored = self.store.get_registry_credentials(image_name)
        except ImageWatchError as e:
            logger.error("Error getting registry creds for image %s: %s", image_name, e)
            return None

        if user_id is not None:
            stored = [c for c in stored if c.user_id == user_id]
        if not stored:
            return None

        try:
            return decrypt_credential(self.decrypter, stored[0])
        except Exception as e:
            logger.error("Error decrypting password for %s: %s", image_name, e)
            return None

    def _apply_hub_info(self, image: Image, info: HubInfo) -> bool:
        """Copy hub metadata onto the image. Returns False if the image is unchanged."""
        last_updated = utc_naive(info.last_updated)

        if image.status == ImageStatus.INSPECTED and last_updated == utc_naive(image.last_updated):
            logger.info("Image %s is unchanged since we last looked at %s", image.name, last_updated)
            return False

        if last_updated and image.last_updated and last_updated < utc_naive(image.last_updated):
            logger.warning("Image %s last updated is older than our own record", image.name)

        image.last_updated = last_updated
        image.is_private = info.is_private
        image.is_automated = info.is_automated
        image.description = info.description or ""
        image.pull_count = info.pull_count
        image.star_count = info.star_count
        image.badges_installed = count_badges(info.full_description, self.config.site.badge_host)
        return True

    def _versions_from_registry(
        self,
        image_name: str,
        credentials: RegistryCredentials | None,
    ) -> list[ImageVersion]:
        client = self.registry.client_for(image_name, credentials)

        tags = client.list_tags()
        if not tags:
            raise RegistryError(f"No tags found for {image_name}")

        versions: dict[str, ImageVersion] = {}
        for tag_name in tags:
            try:
                manifest, raw = client.get_manifest(tag_name)
            except RegistryNotFoundError:
                # The registry sometimes lists tags it then cannot serve
                logger.warning("Skipping tag %s of %s: manifest not found", tag_name, image_name)
                continue

            version = version_from_manifest(manifest, image_name)
            # The same build may be known under several tags
            version = versions.get(version.sha, version)
            version.tags.append(Tag(image_name=image_name, tag=tag_name, sha=version.sha))
            version.manifest = raw.decode("utf-8")
            versions[version.sha] = version

        return list(versions.values())

    @staticmethod
    def _latest(versions: list[ImageVersion]) -> str | None:
        for version in versions:
            if "latest" in version.tag_names:
                return version.sha

        latest = None
        most_recent = None
        for version in versions:
            if version.created is not None and (most_recent is None or version.created > most_recent):
                most_recent = version.created
                latest = version.sha
        return latest

    def inspect(self, image_name: str) -> InspectionResult:
        """Refresh an image from the hub and the registry.

        Args:
            image_name: Full image name, e.g. ``library/nginx``

        Returns:
            Result with the changeset; ``changed`` is False when the hub
            reports no update since the last inspection

        Raises:
            RegistryError: If the registry cannot be read; the image is
                saved as MISSING or FAILED_INSPECTION first
            ReconciliationError: If saving the versions and tags fails
            ImageWatchError: If queueing fails after the tags were saved;
                the image stays in SIZE and the next pass queues whatever
                is still pending
        """
        logger.debug("Inspecting %s", image_name)
        image = self.store.get_or_create_image(image_name)
        previous_status = image.status
        credentials = self._credentials(image_name)

        try:
            info = self.hub.info(image_name, credentials)
        except ImageWatchError as e:
            # The registry may still answer
            logger.error("Failed to get hub info for %s: %s", image_name, e)
            info = HubInfo()

        if not self._apply_hub_info(image, info):
            return InspectionResult(image_name=image_name, status=image.status, changed=False)

        try:
            versions = self._versions_from_registry(image_name, credentials)
        except Exception as e:
            logger.error("Failed to get metadata using registry for %s: %s", image_name, e)
            if isinstance(e, RegistryAuthError) or UNAUTHORIZED_MARKER in str(e):
                image.status = ImageStatus.MISSING
            else:
                image.status = ImageStatus.FAILED_INSPECTION
            image.badge_count = 0
            self.store.save_image(image)
            raise

        logger.debug("%d versions found for %s", len(versions), image_name)
        image.versions = versions
        image.latest = self._latest(versions)
        image.status = ImageStatus.SIZE
        image.badge_count += 1

        if not image.auth_token:
            image.auth_token = generate_auth_token()
        image.webhook_url = f"{self.config.site.webhook_url.rstrip('/')}/images/{image.name}/{image.auth_token}"

        # Commits the tags together with the delivery tasks for their changes
        changeset = self.reconciler.reconcile(image)

        # Also queues tasks left behind by an earlier pass that failed after its commit
        self.dispatcher.send_pending(image.name)

        if changeset.is_empty and previous_status != ImageStatus.SIZE:
            image.status = ImageStatus.INSPECTED
            self.store.save_image(image)
        else:
            # An image still in SIZE had its size pass lost with an earlier failure
            self.queue.send_image(image.name, WorkQueue.SIZE)

        logger.info("Inspected %s: status %s, latest %s", image.name, image.status.value, image.latest)
        return InspectionResult(image_name=image_name, status=image.status, changed=True, changeset=changeset)

    def inspect_size(self, image_name: str) -> InspectionResult:
        """Fill in sizes, layers and fingerprints from stored manifests.

        Args:
            image_name: Full image name

        Returns:
            Result; ``status`` is None when the image was skipped

        Raises:
            RegistryError: If any version could not be sized; the image
                stays in SIZE so the work item is retried
            ValueError: If a stored manifest cannot be parsed
        """
        logger.debug("Inspecting size of %s", image_name)
        try:
            image = self.store.get_image(image_name)
        except ImageNotFoundError:
            image = None

        if image is None or image.status == ImageStatus.MISSING:
            # Not an error: deleting an image is how to stop its size passes
            logger.info("Image %s no longer available", image_name)
            return InspectionResult(image_name=image_name)

        versions = self.store.get_versions_with_manifests(image_name)
        client = self.registry.client_for(image_name, self._credentials(image_name))

        error: Exception | None = None
        updated = 0
        for version in versions:
            if not self.store.version_needs_size_or_layers(version):
                version.manifest = ""
                self.store.save_version(version)
                continue

            manifest = Manifest.parse(version.manifest)

            try:
                total, layer_sizes = client.compute_download_size(manifest)
            except RateLimitedError as e:
                logger.info("Rate limited sizing %s, stopping", image_name)
                error = e
                break
            except RegistryError as e:
                logger.info("Couldn't get download size for %s@%s: %s", image_name, version.sha, e)
                error = e
                continue

            version.download_size = total
            if len(layer_sizes) == len(manifest.history):
                try:
                    version.layers = layers_from_manifest(manifest, layer_sizes)
                except ValueError as e:
                    logger.info("Couldn't get layers for %s@%s: %s", image_name, version.sha, e)
                    error = e
                    continue
                version.fingerprint = fingerprint_layers(version.layers)

            version.manifest = ""
            logger.debug("Updating %s version %s with size %d", image_name, version.sha, total)
            self.store.save_version(version)
            updated += 1

        if error is not None:
            # Stay in SIZE so the next pass picks up what is left
            raise error

        image.status = ImageStatus.INSPECTED
        self.store.save_image(image)
        return InspectionResult(image_name=image_name, status=image.status, changed=updated > 0)

    def check_image_exists(self, image_name: str, credentials: RegistryCredentials | None = None) -> bool:
        """Return True if the registry lists tags for the image."""
        logger.debug("Checking image %s exists", image_name)
        try:
            self.registry.client_for(image_name, credentials).list_tags()
        except ImageWatchError as e:
            logger.debug("Image %s not available: %s", image_name, e)
            return False
        return True

    def submit(self, image_name: str, viewer: Viewer = ANONYMOUS, force: bool = False) -> Image:
        """Queue an image for inspection if it exists upstream.

        Images that are already inspected are left alone unless they have
        no latest version or ``force`` is set. Anonymous requests for
        private images are ignored.

        Args:
            image_name: Full image name
            viewer: Who is asking
            force: Re-queue regardless of status

        Returns:
            The image with its new status
        """
        image = self.store.get_or_create_image(image_name)

        wanted = (
            force
            or image.status in RESUBMITTABLE
            or (image.status == ImageStatus.INSPECTED and image.latest is None)
        )
        if not wanted:
            logger.debug("Image %s is %s, not submitting", image_name, image.status.value)
            return image

        credentials = None
        if image.is_private:
            if not isinstance(viewer, Authenticated):
                logger.info("Ignoring anonymous request to submit private image %s", image_name)
                return image
            credentials = self._credentials(image_name, user_id=viewer.user_id)

        if self.check_image_exists(image_name, credentials):
            try:
                self.queue.send_image(image_name, WorkQueue.INSPECT)
            except ImageWatchError as e:
                logger.error("Failed to queue %s for inspection: %s", image_name, e)
            else:
                image.status = ImageStatus.SUBMITTED
                logger.debug("Image %s now submitted", image_name)
        else:
            logger.debug("Image %s doesn't exist on the registry", image_name)
            image.status = ImageStatus.MISSING

        self.store.save_image(image)
        return image
