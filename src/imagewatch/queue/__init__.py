"""Work queues for imagewatch."""

from imagewatch.queue.base import ImageQueueMessage, NotificationQueueMessage, QueueService, WorkQueue
from imagewatch.queue.memory import MemoryQueueService
from imagewatch.queue.sqs import SqsQueueService
from imagewatch.utils.config import QueueConfig


def create_queue_service(config: QueueConfig) -> QueueService:
    """Create the queue backend named in the configuration."""
    if config.backend == "sqs":
        return SqsQueueService(config)
    return MemoryQueueService()


__all__ = [
    "ImageQueueMessage",
    "MemoryQueueService",
    "NotificationQueueMessage",
    "QueueService",
    "SqsQueueService",
    "WorkQueue",
    "create_queue_service",
]
