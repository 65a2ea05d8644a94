"""Unit tests for queue backends and the inspection worker."""

import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from imagewatch.core.worker import InspectionWorker, _PollingWorker
from imagewatch.queue import create_queue_service
from imagewatch.queue.base import QueueService, WorkQueue
from imagewatch.queue.memory import MemoryQueueService
from imagewatch.queue.sqs import SqsQueueService
from imagewatch.registry.base import RegistryError
from imagewatch.utils.config import QueueConfig
from imagewatch.utils.errors import ConfigurationError


class TestMemoryQueue:
    """Tests for MemoryQueueService."""

    def test_is_a_queue_service(self, queue):
        """Test the backend satisfies the protocol."""
        assert isinstance(queue, QueueService)

    def test_receive_empty(self, queue):
        """Test receiving from an empty queue."""
        assert queue.receive_image(WorkQueue.INSPECT) is None
        assert queue.receive_notification() is None

    def test_queues_are_separate(self, queue):
        """Test the inspect and size queues do not mix."""
        queue.send_image("org/a", WorkQueue.INSPECT)
        queue.send_image("org/b", WorkQueue.SIZE)

        assert queue.receive_image(WorkQueue.SIZE).image_name == "org/b"
        assert queue.receive_image(WorkQueue.INSPECT).image_name == "org/a"

    def test_received_message_offered_again(self, queue):
        """Test a message stays queued until deleted."""
        queue.send_image("org/a")
        queue.send_image("org/b")

        first = queue.receive_image()
        assert first.image_name == "org/a"
        assert queue.receive_image().image_name == "org/b"
        assert queue.receive_image().image_name == "org/a"

        queue.delete_image(first)
        assert queue.pending(WorkQueue.INSPECT) == ["org/b"]

    def test_notifications(self, queue):
        """Test notification ids round the queue as integers."""
        queue.send_notification(7)
        message = queue.receive_notification()
        assert message.notification_id == 7
        queue.delete_notification(message)
        assert queue.receive_notification() is None


class TestSqsQueue:
    """Tests for SqsQueueService with a stubbed client."""

    @pytest.fixture
    def config(self) -> QueueConfig:
        return QueueConfig(
            backend="sqs",
            inspect_queue_url="https://sqs.test/inspect",
            size_queue_url="https://sqs.test/size",
            notification_queue_url="https://sqs.test/notify",
            wait_time_seconds=1,
        )

    def test_send_image(self, config):
        """Test the image name is sent as JSON to the right queue."""
        client = MagicMock()
        SqsQueueService(config, client=client).send_image("org/app", WorkQueue.SIZE)

        kwargs = client.send_message.call_args.kwargs
        assert kwargs["QueueUrl"] == "https://sqs.test/size"
        assert json.loads(kwargs["MessageBody"]) == {"ImageName": "org/app"}

    def test_receive_and_delete_notification(self, config):
        """Test a received message carries its receipt handle."""
        client = MagicMock()
        client.receive_message.return_value = {
            "Messages": [{"Body": json.dumps({"NotificationID": 9}), "ReceiptHandle": "rh-1"}]
        }
        service = SqsQueueService(config, client=client)

        message = service.receive_notification()
        service.delete_notification(message)

        assert message.notification_id == 9
        assert client.delete_message.call_args.kwargs == {
            "QueueUrl": "https://sqs.test/notify",
            "ReceiptHandle": "rh-1",
        }

    def test_receive_empty(self, config):
        """Test an empty receive returns None."""
        client = MagicMock()
        client.receive_message.return_value = {}
        assert SqsQueueService(config, client=client).receive_image(WorkQueue.INSPECT) is None

    def test_missing_queue_url(self):
        """Test an unconfigured queue is a configuration error."""
        with pytest.raises(ConfigurationError):
            SqsQueueService(QueueConfig(backend="sqs"), client=MagicMock())


class TestCreateQueueService:
    """Tests for create_queue_service."""

    def test_memory_backend(self):
        """Test the default backend."""
        assert isinstance(create_queue_service(QueueConfig()), MemoryQueueService)


class TestInspectionWorker:
    """Tests for InspectionWorker."""

    def test_success_deletes_message(self):
        """Test a processed image leaves the queue."""
        queue = MemoryQueueService()
        queue.send_image("org/app", WorkQueue.INSPECT)
        inspector = MagicMock()

        worker = InspectionWorker(inspector, queue, WorkQueue.INSPECT, poll_interval=0)

        assert worker.run_once() is True
        inspector.inspect.assert_called_once_with("org/app")
        assert queue.pending(WorkQueue.INSPECT) == []

    def test_size_queue_calls_inspect_size(self):
        """Test the size worker runs the size phase."""
        queue = MemoryQueueService()
        queue.send_image("org/app", WorkQueue.SIZE)
        inspector = MagicMock()

        InspectionWorker(inspector, queue, WorkQueue.SIZE, poll_interval=0).run_once()

        inspector.inspect_size.assert_called_once_with("org/app")
        inspector.inspect.assert_not_called()

    def test_failure_leaves_message(self):
        """Test a failed image is offered again."""
        queue = MemoryQueueService()
        queue.send_image("org/app", WorkQueue.INSPECT)
        inspector = MagicMock()
        inspector.inspect.side_effect = RegistryError("registry down")

        worker = InspectionWorker(inspector, queue, WorkQueue.INSPECT, poll_interval=0)

        assert worker.run_once() is True
        assert queue.pending(WorkQueue.INSPECT) == ["org/app"]

    def test_run_stops_after_max_iterations(self):
        """Test run polls a bounded number of times."""
        queue = MemoryQueueService()
        queue.send_image("org/a")
        queue.send_image("org/b")

        received = InspectionWorker(MagicMock(), queue, poll_interval=0).run(max_iterations=5)

        assert received == 2

    def test_stop(self):
        """Test a stopped worker does not poll."""
        queue = MemoryQueueService()
        queue.send_image("org/a")
        worker = InspectionWorker(MagicMock(), queue, poll_interval=0)
        worker.stop()

        assert worker.stopped
        assert worker.run(max_iterations=5) == 0

    def test_database_error_leaves_message_and_keeps_polling(self):
        """Test an error that is not an ImageWatchError does not end the worker."""
        queue = MemoryQueueService()
        queue.send_image("org/a")
        queue.send_image("org/b")
        inspector = MagicMock()
        inspector.inspect.side_effect = [OperationalError("UPDATE images", {}, Exception("db gone")), None]

        received = InspectionWorker(inspector, queue, poll_interval=0).run(max_iterations=2)

        assert received == 2
        assert inspector.inspect.call_count == 2
        assert queue.pending(WorkQueue.INSPECT) == ["org/a"]

    def test_receive_failure_keeps_polling(self):
        """Test a queue that fails to answer is polled again."""
        queue = MagicMock()
        queue.receive_image.side_effect = [ConnectionError("queue down"), None]

        worker = InspectionWorker(MagicMock(), queue, poll_interval=0)

        assert worker.run(max_iterations=2) == 0
        assert queue.receive_image.call_count == 2


class TestPollingWorker:
    """Tests for the polling base class."""

    def test_run_once_is_abstract(self):
        """Test the base class cannot be used without a run_once."""
        with pytest.raises(TypeError):
            _PollingWorker(MemoryQueueService())
