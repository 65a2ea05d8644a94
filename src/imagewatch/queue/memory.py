"""In-process queue backend."""

from __future__ import annotations

import threading
import uuid
from collections import deque

from imagewatch.queue.base import ImageQueueMessage, NotificationQueueMessage, WorkQueue
from imagewatch.utils.logging import get_logger

logger = get_logger(__name__)

_NOTIFICATIONS = "notifications"


class MemoryQueueService:
    """Thread-safe in-memory queues.

    A received message is moved to the back of its queue rather than
    removed, so it is offered again on a later receive until deleted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queues: dict[str, deque[tuple[str, str | int]]] = {
            WorkQueue.INSPECT.value: deque(),
            WorkQueue.SIZE.value: deque(),
            _NOTIFICATIONS: deque(),
        }

    def _send(self, name: str, body: str | int) -> None:
        with self._lock:
            self._queues[name].append((uuid.uuid4().hex, body))

    def _receive(self, name: str) -> tuple[str, str | int] | None:
        with self._lock:
            queue = self._queues[name]
            if not queue:
                return None
            entry = queue.popleft()
            queue.append(entry)
            return entry

    def _delete(self, name: str, handle: str | None) -> None:
        with self._lock:
            queue = self._queues[name]
            for entry in list(queue):
                if entry[0] == handle:
                    queue.remove(entry)
                    return

    def pending(self, name: WorkQueue | str) -> list[str | int]:
        """Bodies still on a queue, in delivery order."""
        key = name.value if isinstance(name, WorkQueue) else name
        with self._lock:
            return [body for _, body in self._queues[key]]

    def send_image(self, image_name: str, queue: WorkQueue = WorkQueue.INSPECT) -> None:
        logger.info("Sending image %s to %s queue", image_name, queue.value)
        self._send(queue.value, image_name)

    def receive_image(self, queue: WorkQueue = WorkQueue.INSPECT) -> ImageQueueMessage | None:
        entry = self._receive(queue.value)
        if entry is None:
            return None
        handle, body = entry
        return ImageQueueMessage(image_name=str(body), queue=queue, receipt_handle=handle)

    def delete_image(self, message: ImageQueueMessage) -> None:
        self._delete(message.queue.value, message.receipt_handle)

    def send_notification(self, notification_id: int) -> None:
        logger.info("Sending notification message %d to queue", notification_id)
        self._send(_NOTIFICATIONS, notification_id)

    def receive_notification(self) -> NotificationQueueMessage | None:
        entry = self._receive(_NOTIFICATIONS)
        if entry is None:
            return None
        handle, body = entry
        return NotificationQueueMessage(notification_id=int(body), receipt_handle=handle)

    def delete_notification(self, message: NotificationQueueMessage) -> None:
        self._delete(_NOTIFICATIONS, message.receipt_handle)
