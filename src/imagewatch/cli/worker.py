"""CLI commands that run queue consumers."""

from typing import Optional

import typer

from imagewatch.cli.utils import build_services, console
from imagewatch.core.notifications import NotificationSender
from imagewatch.core.worker import InspectionWorker, NotificationWorker
from imagewatch.queue.base import WorkQueue

app = typer.Typer(help="Run queue workers.", no_args_is_help=True)

MAX_ITEMS_HELP = "Stop after this many polls (default: run until interrupted)"


def _run(worker, name: str, max_items: Optional[int]) -> None:
    console.print(f"Starting {name} worker")
    try:
        received = worker.run(max_iterations=max_items)
    except KeyboardInterrupt:
        worker.stop()
        received = None
    if received is not None:
        console.print(f"{name} worker handled {received} messages")


@app.command("inspect")
def inspect_worker(
    max_items: Optional[int] = typer.Option(None, "--max-items", "-n", help=MAX_ITEMS_HELP),
) -> None:
    """Consume the inspect queue."""
    services = build_services()
    worker = InspectionWorker(
        services.inspector(), services.queue, WorkQueue.INSPECT, services.config.queue.poll_interval
    )
    try:
        _run(worker, "inspect", max_items)
    finally:
        services.close()


@app.command("size")
def size_worker(
    max_items: Optional[int] = typer.Option(None, "--max-items", "-n", help=MAX_ITEMS_HELP),
) -> None:
    """Consume the size queue."""
    services = build_services()
    worker = InspectionWorker(
        services.inspector(), services.queue, WorkQueue.SIZE, services.config.queue.poll_interval
    )
    try:
        _run(worker, "size", max_items)
    finally:
        services.close()


@app.command("notify")
def notify_worker(
    max_items: Optional[int] = typer.Option(None, "--max-items", "-n", help=MAX_ITEMS_HELP),
) -> None:
    """Consume the notification queue and post webhooks."""
    services = build_services()
    config = services.config
    sender = NotificationSender(services.store, config.notifications)
    worker = NotificationWorker(
        sender, services.queue, config.notifications.max_attempts, config.queue.poll_interval
    )
    try:
        _run(worker, "notify", max_items)
    finally:
        sender.close()
        services.close()
