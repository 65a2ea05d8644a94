"""Amazon SQS queue backend."""

from __future__ import annotations

import json
from typing import Any

from imagewatch.queue.base import ImageQueueMessage, NotificationQueueMessage, WorkQueue
from imagewatch.utils.config import QueueConfig
from imagewatch.utils.errors import ConfigurationError, ImageWatchError
from imagewatch.utils.logging import get_logger

logger = get_logger(__name__)


class SqsQueueService:
    """Queues backed by SQS.

    Bodies are JSON: ``{"ImageName": ...}`` on the image queues and
    ``{"NotificationID": ...}`` on the notification queue.
    """

    def __init__(self, config: QueueConfig, client: Any = None) -> None:
        """Initialize the backend.

        Args:
            config: Queue URLs, region and long-poll settings
            client: Optional boto3 SQS client, created from config if None

        Raises:
            ConfigurationError: If a queue URL is missing or boto3 is not installed
        """
        self.config = config
        self._urls = {
            WorkQueue.INSPECT: config.inspect_queue_url,
            WorkQueue.SIZE: config.size_queue_url,
        }
        for queue, url in self._urls.items():
            if not url:
                raise ConfigurationError(f"No SQS URL configured for {queue.value} queue", config_key="queue")
        if not config.notification_queue_url:
            raise ConfigurationError("No SQS URL configured for notification queue", config_key="queue")

        if client is None:
            try:
                import boto3
            except ImportError:
                raise ConfigurationError(
                    "boto3 not available. Install with: pip install imagewatch[sqs]",
                    config_key="queue.backend",
                )
            client = boto3.client("sqs", region_name=config.region)
        self._client = client

    def _send(self, url: str, body: dict[str, Any]) -> None:
        try:
            self._client.send_message(QueueUrl=url, MessageBody=json.dumps(body))
        except Exception as e:
            raise ImageWatchError(f"Failed to send to {url}: {e}", code="QUEUE_ERROR") from e

    def _receive(self, url: str) -> tuple[dict[str, Any], str] | None:
        response = self._client.receive_message(
            QueueUrl=url,
            MaxNumberOfMessages=1,
            WaitTimeSeconds=self.config.wait_time_seconds,
        )
        messages = response.get("Messages") or []
        if not messages:
            return None

        message = messages[0]
        try:
            body = json.loads(message["Body"])
        except (KeyError, ValueError) as e:
            logger.error("Dropping unreadable message from %s: %s", url, e)
            self._client.delete_message(QueueUrl=url, ReceiptHandle=message["ReceiptHandle"])
            return None
        return body, message["ReceiptHandle"]

    def send_image(self, image_name: str, queue: WorkQueue = WorkQueue.INSPECT) -> None:
        logger.info("Sending image %s to %s queue", image_name, queue.value)
        self._send(self._urls[queue], {"ImageName": image_name})

    def receive_image(self, queue: WorkQueue = WorkQueue.INSPECT) -> ImageQueueMessage | None:
        received = self._receive(self._urls[queue])
        if received is None:
            return None
        body, handle = received
        return ImageQueueMessage(image_name=body.get("ImageName", ""), queue=queue, receipt_handle=handle)

    def delete_image(self, message: ImageQueueMessage) -> None:
        self._client.delete_message(QueueUrl=self._urls[message.queue], ReceiptHandle=message.receipt_handle)

    def send_notification(self, notification_id: int) -> None:
        logger.info("Sending notification message %d to queue", notification_id)
        self._send(self.config.notification_queue_url, {"NotificationID": notification_id})

    def receive_notification(self) -> NotificationQueueMessage | None:
        received = self._receive(self.config.notification_queue_url)
        if received is None:
            return None
        body, handle = received
        return NotificationQueueMessage(notification_id=int(body.get("NotificationID", 0)), receipt_handle=handle)

    def delete_notification(self, message: NotificationQueueMessage) -> None:
        self._client.delete_message(QueueUrl=self.config.notification_queue_url, ReceiptHandle=message.receipt_handle)
