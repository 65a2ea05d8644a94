"""Queue consumer loops."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

from imagewatch.core.inspector import Inspector
from imagewatch.core.notifications import NotificationSender
from imagewatch.queue.base import QueueService, WorkQueue
from imagewatch.utils.errors import ImageWatchError
from imagewatch.utils.logging import get_logger, log_context

logger = get_logger(__name__)


class _PollingWorker(ABC):
    """Polls a queue, handling one message at a time until stopped.

    A failure while handling a message never ends the loop: the message
    is left queued for redelivery and polling carries on.
    """

    def __init__(self, queue: QueueService, poll_interval: float = 0.25) -> None:
        self.queue = queue
        self.poll_interval = poll_interval
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @abstractmethod
    def run_once(self) -> bool:
        """Handle at most one message. Returns True if one was received."""

    def run(self, max_iterations: int | None = None) -> int:
        """Poll until stopped or ``max_iterations`` polls have been made.

        Returns:
            Number of messages received
        """
        received = 0
        iterations = 0
        while not self._stop.is_set():
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1
            try:
                got_message = self.run_once()
            except Exception:
                # Receiving or acknowledging failed; the queue redelivers
                logger.exception("Error polling %s", type(self).__name__)
                got_message = False
            if got_message:
                received += 1
            else:
                self._stop.wait(self.poll_interval)
        return received


class InspectionWorker(_PollingWorker):
    """Consumes the inspect or size queue.

    A message is deleted once its image has been processed; on failure
    it is left on the queue to be delivered again.
    """

    def __init__(
        self,
        inspector: Inspector,
        queue: QueueService,
        kind: WorkQueue = WorkQueue.INSPECT,
        poll_interval: float = 0.25,
    ) -> None:
        super().__init__(queue, poll_interval)
        self.inspector = inspector
        self.kind = kind

    def run_once(self) -> bool:
        message = self.queue.receive_image(self.kind)
        if message is None:
            return False

        with log_context(image=message.image_name, queue=self.kind.value):
            logger.info("Received %s request for %s", self.kind.value, message.image_name)
            try:
                if self.kind == WorkQueue.SIZE:
                    self.inspector.inspect_size(message.image_name)
                else:
                    self.inspector.inspect(message.image_name)
            except ImageWatchError as e:
                logger.error("Failed to %s %s, leaving it queued: %s", self.kind.value, message.image_name, e)
                return True
            except Exception:
                logger.exception("Failed to %s %s, leaving it queued", self.kind.value, message.image_name)
                return True

            self.queue.delete_image(message)
        return True


class NotificationWorker(_PollingWorker):
    """Consumes the notification queue with a bounded number of attempts."""

    def __init__(
        self,
        sender: NotificationSender,
        queue: QueueService,
        max_attempts: int = 5,
        poll_interval: float = 0.25,
    ) -> None:
        super().__init__(queue, poll_interval)
        self.sender = sender
        self.max_attempts = max_attempts

    def run_once(self) -> bool:
        message = self.queue.receive_notification()
        if message is None:
            return False

        with log_context(notification=message.notification_id, queue="notifications"):
            logger.info("Sending notification for: %d", message.notification_id)
            try:
                success, attempts = self.sender.send(message.notification_id)
            except ImageWatchError as e:
                logger.error("Error sending notification for %d: %s", message.notification_id, e)
                if e.code == "MESSAGE_NOT_FOUND":
                    self.queue.delete_notification(message)
                return True
            except Exception:
                logger.exception("Error sending notification for %d", message.notification_id)
                return True

            if success or attempts >= self.max_attempts:
                logger.info("Notification %d stopping after %d attempts", message.notification_id, attempts)
                self.queue.delete_notification(message)
        return True
