"""Integration tests running images through the queues end to end."""

import json

import httpx
import pytest

from imagewatch.core.lineage import LineageMatcher
from imagewatch.core.notifications import NotificationSender
from imagewatch.core.worker import InspectionWorker, NotificationWorker
from imagewatch.models.image import ImageStatus
from imagewatch.models.notification import Subscription
from imagewatch.queue.base import WorkQueue
from imagewatch.utils.errors import ImageWatchError

BASE = ("base", ["/bin/sh", "-c", "#(nop) ADD file:abc in /"], "sha256:a")
V1 = [BASE, ("v1", ["/bin/sh", "-c", "make"], "sha256:b")]
V2 = [BASE, ("v2", ["/bin/sh", "-c", "make release"], "sha256:c")]
CHILD = V2 + [("child", ["/bin/sh", "-c", "#(nop) CMD [\"serve\"]"], "sha256:d")]


@pytest.fixture
def workers(inspector, queue):
    return (
        InspectionWorker(inspector, queue, WorkQueue.INSPECT, poll_interval=0),
        InspectionWorker(inspector, queue, WorkQueue.SIZE, poll_interval=0),
    )


@pytest.fixture
def hub(fake_hub, manifest_factory):
    """org/app with latest and stable on v1."""
    m1 = manifest_factory("org/app", "latest", V1)
    fake_hub.add_image("org/app", {"latest": m1, "stable": m1})
    fake_hub.blobs.update({"sha256:a": 1000, "sha256:b": 200, "sha256:c": 300, "sha256:d": 5})
    return fake_hub


def drain(*workers) -> None:
    for worker in workers:
        worker.run(max_iterations=3)


class TestImageLifecycle:
    """Submit, inspect, size, change and notify."""

    def test_submit_to_inspected(self, inspector, store, queue, workers, hub):
        """Test a submitted image ends up inspected with sizes."""
        assert inspector.submit("org/app").status == ImageStatus.SUBMITTED

        drain(*workers)

        image = store.get_image("org/app")
        assert image.status == ImageStatus.INSPECTED
        assert image.latest == "v1"
        assert store.get_version("org/app", "v1").download_size == 1200
        assert queue.pending(WorkQueue.INSPECT) == []
        assert queue.pending(WorkQueue.SIZE) == []

    def test_tag_changes_notify_subscribers(self, inspector, store, queue, workers, hub, manifest_factory):
        """Test moving and adding tags reaches a subscriber's webhook."""
        inspector.submit("org/app")
        drain(*workers)
        store.add_subscription(Subscription(user_id=1, image_name="org/app", webhook_url="https://client.test/hook"))

        m1 = hub.manifests["org/app"]["stable"]
        m2 = manifest_factory("org/app", "latest", V2)
        hub.manifests["org/app"] = {"latest": m2, "stable": m1, "beta": m2}
        hub.hub_info["org/app"]["last_updated"] = "2016-07-01T00:00:00Z"

        result = inspector.inspect("org/app")

        changeset = result.changeset
        assert {t.tag for t in changeset.new_tags} == {"beta"}
        assert [(t.tag, t.sha) for t in changeset.changed_tags] == [("latest", "v2")]
        assert changeset.deleted_tags == []
        assert store.get_tag_names("org/app", "v2") == ["beta", "latest"]
        assert store.get_tag_names("org/app", "v1") == ["stable"]

        posts: list[httpx.Request] = []

        def webhook(request: httpx.Request) -> httpx.Response:
            posts.append(request)
            return httpx.Response(200)

        sender = NotificationSender(store, transport=httpx.MockTransport(webhook))
        NotificationWorker(sender, queue, poll_interval=0).run(max_iterations=2)
        sender.close()

        assert len(posts) == 1
        body = json.loads(posts[0].content)
        assert body["new_tags"] == [{"tag": "beta", "sha": "v2"}]
        assert body["changed_tags"] == [{"tag": "latest", "sha": "v2"}]
        assert queue.pending("notifications") == []

        drain(workers[1])
        assert store.get_image("org/app").status == ImageStatus.INSPECTED
        assert store.get_version("org/app", "v2").download_size == 1300

    def test_queue_outage_recovers_on_redelivery(self, inspector, store, queue, workers, hub, monkeypatch):
        """Test a notification that could not be queued is delivered once the work item comes back."""
        store.add_subscription(Subscription(user_id=1, image_name="org/app", webhook_url="https://client.test/hook"))
        real_send = queue.send_notification
        attempts = []

        def flaky_send(notification_id):
            attempts.append(notification_id)
            if len(attempts) == 1:
                raise ImageWatchError("queue unavailable", code="QUEUE_ERROR")
            real_send(notification_id)

        monkeypatch.setattr(queue, "send_notification", flaky_send)
        inspector.submit("org/app")

        drain(*workers)

        assert len(attempts) == 2
        assert queue.pending("notifications") == [attempts[0]]
        assert store.get_unqueued_notification_messages("org/app") == []
        assert store.get_image("org/app").status == ImageStatus.INSPECTED
        assert queue.pending(WorkQueue.INSPECT) == []

    def test_unchanged_image_is_quiet(self, inspector, store, queue, workers, hub):
        """Test re-inspecting without a hub update does nothing."""
        inspector.submit("org/app")
        drain(*workers)

        queue.send_image("org/app", WorkQueue.INSPECT)
        drain(*workers)

        assert store.get_image("org/app").badge_count == 1
        assert queue.pending(WorkQueue.SIZE) == []


class TestLineageAfterInspection:
    """Parent discovery across inspected images."""

    def test_child_finds_parent(self, inspector, store, queue, workers, hub, manifest_factory, config):
        """Test an image built on org/app's v2 lists it as its parent."""
        m2 = manifest_factory("org/app", "latest", V2)
        hub.manifests["org/app"] = {"latest": m2}
        hub.add_image("org/child", {"latest": manifest_factory("org/child", "latest", CHILD)})

        for name in ("org/app", "org/child"):
            inspector.submit(name)
        drain(*workers)

        lineage = LineageMatcher(store, config.site).version_lineage("org/child", "child")

        assert [p.image_name for p in lineage.parents] == ["org/app"]
        assert lineage.parents[0].tags == ["latest"]
        assert lineage.parents[0].page_url == "https://site.test/images/org/app"
        assert [layer.command for layer in lineage.layers] == ['CMD ["serve"]']
        assert lineage.identical == []
