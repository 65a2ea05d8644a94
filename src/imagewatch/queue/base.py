"""Work queue protocol and message types."""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


class WorkQueue(str, Enum):
    """Queues that carry image names."""

    INSPECT = "inspect"
    SIZE = "size"


class ImageQueueMessage(BaseModel):
    """An image waiting to be inspected or sized."""

    model_config = {"frozen": True}

    image_name: str = Field(description="Image to process")
    queue: WorkQueue = Field(default=WorkQueue.INSPECT, description="Queue the message came from")
    receipt_handle: str | None = Field(default=None, description="Handle used to delete the message")


class NotificationQueueMessage(BaseModel):
    """A webhook delivery task waiting to be sent."""

    model_config = {"frozen": True}

    notification_id: int = Field(description="Id of the stored notification message")
    receipt_handle: str | None = Field(default=None, description="Handle used to delete the message")


@runtime_checkable
class QueueService(Protocol):
    """Protocol for queue backends.

    Messages are delivered at least once: a received message stays on the
    queue until it is deleted, so a consumer that fails simply leaves it
    to be received again.
    """

    def send_image(self, image_name: str, queue: WorkQueue = WorkQueue.INSPECT) -> None:
        ...

    def receive_image(self, queue: WorkQueue = WorkQueue.INSPECT) -> ImageQueueMessage | None:
        """Receive one image message, or None if the queue is empty."""
        ...

    def delete_image(self, message: ImageQueueMessage) -> None:
        ...

    def send_notification(self, notification_id: int) -> None:
        ...

    def receive_notification(self) -> NotificationQueueMessage | None:
        """Receive one notification message, or None if the queue is empty."""
        ...

    def delete_notification(self, message: NotificationQueueMessage) -> None:
        ...
