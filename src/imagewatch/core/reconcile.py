"""Saving an inspected image and working out which tags changed."""

from __future__ import annotations

from typing import TYPE_CHECKING

from imagewatch.models.changeset import Changeset
from imagewatch.models.image import Image, Tag
from imagewatch.storage.base import Store
from imagewatch.utils.config import SiteConfig
from imagewatch.utils.errors import ReconciliationError, ValidationError
from imagewatch.utils.logging import get_logger, log_context
from imagewatch.utils.reference import display_name, page_url

if TYPE_CHECKING:
    from imagewatch.core.notifications import NotificationDispatcher

logger = get_logger(__name__)


class TagReconciler:
    """Diffs an image's new tag state against the stored one in a single transaction.

    Every incoming tag ends up in exactly one of new, changed or
    unchanged; every stored tag that is not incoming is deleted. With a
    dispatcher, delivery tasks for a non-empty changeset are saved in the
    same transaction, so a committed change always has its notifications.
    """

    def __init__(
        self,
        store: Store,
        site: SiteConfig | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.store = store
        self.site = site or SiteConfig()
        self.dispatcher = dispatcher

    def reconcile(self, image: Image) -> Changeset:
        """Save the image, its versions and tags, returning what changed.

        Args:
            image: Image with ``versions`` (and their ``tags``) populated

        Returns:
            Changeset, empty when the tags are unchanged

        Raises:
            ValidationError: If the image has no name
            ReconciliationError: If anything fails; nothing is saved
        """
        if not image.name:
            raise ValidationError("Cannot reconcile an image with no name", field="name")

        with log_context(image=image.name), self.store.unit_of_work() as uow:
            try:
                old_tags = {t.tag: t for t in uow.load_tags(image.name)}
                logger.debug("There are currently %d tags", len(old_tags))

                uow.save_image(image)

                new_tags: list[Tag] = []
                changed_tags: list[Tag] = []

                for version in image.versions:
                    uow.upsert_version(version)

                    for tag in version.tags:
                        tag = Tag(image_name=image.name, tag=tag.tag, sha=version.sha)
                        old = old_tags.pop(tag.tag, None)
                        if old is None:
                            logger.debug("Tag %s is new", tag.tag)
                            new_tags.append(tag)
                            uow.insert_tag(tag)
                        elif old.sha != tag.sha:
                            logger.debug("Tag %s moved from %s to %s", tag.tag, old.sha, tag.sha)
                            changed_tags.append(tag)
                            uow.update_tag(tag)

                deleted_tags = list(old_tags.values())
                for tag in deleted_tags:
                    logger.debug("Deleting tag %s for version %s", tag.tag, tag.sha)
                    uow.delete_tag(tag)

                name = display_name(image.name, self.site.official_namespace)
                url = page_url(
                    self.site.site_url,
                    image.name,
                    is_private=image.is_private,
                    official_namespace=self.site.official_namespace,
                )
                changeset = Changeset(
                    image_name=name,
                    text=f"Image {name} has changed {url}",
                    new_tags=new_tags,
                    changed_tags=changed_tags,
                    deleted_tags=deleted_tags,
                )

                if self.dispatcher is not None:
                    self.dispatcher.stage(uow, changeset, image.name)

                uow.commit()
            except Exception as e:
                logger.error("Rolling back save of %s: %s", image.name, e)
                uow.rollback()
                raise ReconciliationError(image.name, cause=e) from e

            logger.info(
                "Reconciled tags: %d new, %d changed, %d deleted",
                len(changeset.new_tags),
                len(changeset.changed_tags),
                len(changeset.deleted_tags),
            )
        return changeset
