"""Shared utilities for CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer
from pydantic import BaseModel
from rich.console import Console

from imagewatch.core.inspector import Inspector
from imagewatch.queue import QueueService, create_queue_service
from imagewatch.registry import DockerHubRegistry, HubInfoService
from imagewatch.storage import SqlStore
from imagewatch.utils.config import ImageWatchConfig, get_config
from imagewatch.utils.errors import ImageWatchError

# Shared console instance
console = Console()


@dataclass
class Services:
    """Everything a command needs, wired from one configuration."""

    config: ImageWatchConfig
    store: SqlStore
    queue: QueueService
    registry: DockerHubRegistry
    hub: HubInfoService

    def inspector(self) -> Inspector:
        return Inspector(self.store, self.registry, self.hub, self.queue, config=self.config)

    def close(self) -> None:
        self.registry.close()
        self.hub.close()


def open_store(config: ImageWatchConfig) -> SqlStore:
    store = SqlStore(config.database.url, echo=config.database.echo)
    store.create_all()
    return store


def build_services(config: ImageWatchConfig | None = None) -> Services:
    """Wire the store, queue and registry clients from configuration.

    Exits with status 1 if the configuration cannot be used.
    """
    config = config or get_config()
    try:
        return Services(
            config=config,
            store=open_store(config),
            queue=create_queue_service(config.queue),
            registry=DockerHubRegistry(config.registry),
            hub=HubInfoService(config.registry),
        )
    except ImageWatchError as e:
        fail(str(e))


def fail(message: str, details: list[str] | None = None) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error:[/red] {message}")
    for detail in details or []:
        console.print(f"  {detail}")
    raise typer.Exit(1)


def fail_with(error: Exception, json_output: bool = False, message: str | None = None) -> None:
    """Report a failed operation and exit with status 1.

    With ``json_output`` the error is printed as an ``OperationError``
    object so scripts get its code and details; otherwise as text with
    the code in brackets.

    Args:
        error: What went wrong; anything that is not an ImageWatchError
            is reported with code ``INVALID_DATA``
        json_output: Print JSON instead of text
        message: Headline for the text form
    """
    if not isinstance(error, ImageWatchError):
        error = ImageWatchError(str(error), code="INVALID_DATA")
    operation_error = error.to_operation_error()

    if json_output:
        console.print_json(operation_error.model_dump_json())
        raise typer.Exit(1)

    if message:
        fail(message, [str(operation_error)])
    fail(str(operation_error))


def output_json(data: dict[str, Any] | BaseModel, output: Path | None = None) -> None:
    """Output data as JSON to console or file.

    Args:
        data: Data to output (dict or Pydantic model)
        output: Optional output file path
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")

    json_str = json.dumps(data, indent=2, default=str)

    if output:
        output.write_text(json_str)
        console.print(f"Report written to {output}")
    else:
        console.print_json(json_str)


def status_style(status: str) -> str:
    """Get Rich style for an image status."""
    styles = {
        "INSPECTED": "green",
        "SIZE": "cyan",
        "SUBMITTED": "blue",
        "SITEMAP": "blue",
        "FAILED_INSPECTION": "red",
        "MISSING": "yellow",
    }
    return styles.get(status.upper(), "white")


def format_size(num_bytes: int) -> str:
    """Human readable byte count."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
