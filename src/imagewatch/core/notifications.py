"""Webhook notifications for tag changes."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx

from imagewatch.models.changeset import Changeset
from imagewatch.models.notification import NotificationMessage
from imagewatch.queue.base import QueueService
from imagewatch.storage.base import Store, UnitOfWork
from imagewatch.utils.config import NotificationConfig
from imagewatch.utils.errors import ImageWatchError
from imagewatch.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationDispatcher:
    """Turns a changeset into one queued delivery task per subscription.

    Delivery tasks are saved in the same unit of work as the tag changes
    they describe (``stage``) and only handed to the queue once that has
    committed (``send_pending``). A task that could not be queued stays
    unqueued in the store and is picked up by the next ``send_pending``
    for the image.
    """

    def __init__(self, store: Store, queue: QueueService) -> None:
        self.store = store
        self.queue = queue

    def stage(self, uow: UnitOfWork, changeset: Changeset, image_name: str) -> list[NotificationMessage]:
        """Save a delivery task for every subscriber of the image inside ``uow``.

        Args:
            uow: Open unit of work the tag changes are being saved in
            changeset: What changed
            image_name: Full image name the subscriptions are keyed by

        Returns:
            The staged messages, with ids
        """
        if changeset.is_empty:
            return []

        subscriptions = uow.get_subscriptions(image_name)
        logger.info("Generating %d notifications for image %s", len(subscriptions), image_name)

        body = json.dumps(changeset.to_payload())
        return [
            uow.save_notification_message(
                NotificationMessage(
                    subscription_id=subscription.id,
                    image_name=subscription.image_name,
                    webhook_url=subscription.webhook_url,
                    message=body,
                )
            )
            for subscription in subscriptions
        ]

    def send_pending(self, image_name: str) -> list[int]:
        """Queue every saved delivery task for the image that is not queued yet.

        Returns:
            Ids queued by this call

        Raises:
            ImageWatchError: The last queueing failure, after every other
                message has been tried; the failed ones stay pending
        """
        queued = []
        error: Exception | None = None
        for message in self.store.get_unqueued_notification_messages(image_name):
            try:
                self.queue.send_notification(message.id)
            except ImageWatchError as e:
                logger.error("Failed to queue notification %d for %s: %s", message.id, image_name, e)
                error = e
                continue
            self.store.mark_notification_queued(message.id)
            queued.append(message.id)

        if error is not None:
            raise error
        return queued

    def dispatch(self, changeset: Changeset, image_name: str | None = None) -> list[int]:
        """Save and enqueue a delivery task for every subscriber of the image.

        Args:
            changeset: What changed
            image_name: Full image name the subscriptions are keyed by;
                defaults to the changeset's display name

        Returns:
            Ids of the queued messages
        """
        if changeset.is_empty:
            return []

        image_name = image_name or changeset.image_name
        with self.store.unit_of_work() as uow:
            self.stage(uow, changeset, image_name)
            uow.commit()
        return self.send_pending(image_name)


class NotificationSender:
    """Posts a stored delivery task to its webhook and records the outcome."""

    def __init__(
        self,
        store: Store,
        config: NotificationConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.store = store
        self.config = config or NotificationConfig()
        self._http = httpx.Client(timeout=self.config.timeout, transport=transport)

    def send(self, message_id: int) -> tuple[bool, int]:
        """Attempt one delivery.

        A transport failure is recorded with status 0 rather than raised.

        Args:
            message_id: Stored message id

        Returns:
            Tuple of (succeeded, attempts so far)

        Raises:
            ImageWatchError: If the message does not exist
        """
        message = self.store.get_notification_message(message_id)

        status_code = 0
        response_body = ""
        try:
            response = self._http.post(
                message.webhook_url,
                content=message.message.encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
            status_code = response.status_code
            response_body = response.text
        except httpx.HTTPError as e:
            logger.error("Error sending notification %d: %s", message_id, e)
            response_body = str(e)

        message.attempts += 1
        message.status_code = status_code
        message.response = response_body
        message.sent_at = datetime.now(timezone.utc)

        if not message.succeeded:
            logger.info("Notification response %d for ID %d", status_code, message_id)

        self.store.save_notification_message(message)
        return message.succeeded, message.attempts

    def close(self) -> None:
        self._http.close()
