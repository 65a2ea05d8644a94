"""CLI commands that drive the inspection pipeline."""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from imagewatch.cli.utils import build_services, console, fail, fail_with, output_json, status_style
from imagewatch.models.viewer import ANONYMOUS, Authenticated
from imagewatch.utils.config import get_config
from imagewatch.utils.errors import ImageWatchError, ValidationError, validate_image_name


def _full_name(image: str, official_namespace: str) -> str:
    try:
        validate_image_name(image)
    except ValidationError as e:
        fail(e.message)
    return image if "/" in image else f"{official_namespace}/{image}"


def inspect_cmd(
    image: str = typer.Argument(..., help="Image name, e.g. nginx or org/app"),
    size: bool = typer.Option(False, "--size", "-s", help="Run the size pass straight after"),
    json_output: bool = typer.Option(False, "--json", help="Output the result as JSON"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON output to a file"),
) -> None:
    """
    Inspect an image from the hub and the registry.

    Records its versions and tags and reports which tags changed since
    the last inspection.

    Example:
        imagewatch inspect nginx --size
    """
    name = _full_name(image, get_config().site.official_namespace)
    services = build_services()
    inspector = services.inspector()

    try:
        with console.status(f"Inspecting {name}..."):
            result = inspector.inspect(name)
            if size and result.changeset is not None and not result.changeset.is_empty:
                result = result.model_copy(update={"status": inspector.inspect_size(name).status})
    except (ImageWatchError, ValueError) as e:
        fail_with(e, json_output, f"Inspection of {name} failed")
    finally:
        services.close()

    if json_output or output:
        output_json(result, output)
        return

    style = status_style(result.status.value if result.status else "")
    console.print(f"[bold]{name}[/bold]: [{style}]{result.status.value if result.status else 'skipped'}[/{style}]")

    if not result.changed:
        console.print("No update since the last inspection")
        return

    changeset = result.changeset
    if changeset is None or changeset.is_empty:
        console.print("Tags unchanged")
        return

    table = Table(title=changeset.text)
    table.add_column("Change")
    table.add_column("Tag")
    table.add_column("Version")
    for label, tags, colour in (
        ("new", changeset.new_tags, "green"),
        ("changed", changeset.changed_tags, "yellow"),
        ("deleted", changeset.deleted_tags, "red"),
    ):
        for tag in tags:
            table.add_row(f"[{colour}]{label}[/{colour}]", tag.tag, tag.sha[:12])
    console.print(table)


def size_cmd(
    image: str = typer.Argument(..., help="Image name, e.g. nginx or org/app"),
) -> None:
    """
    Fill in download sizes, layers and fingerprints for an image.
    """
    name = _full_name(image, get_config().site.official_namespace)
    services = build_services()

    try:
        with console.status(f"Sizing {name}..."):
            result = services.inspector().inspect_size(name)
    except (ImageWatchError, ValueError) as e:
        fail_with(e, message=f"Size inspection of {name} failed")
    finally:
        services.close()

    if result.status is None:
        console.print(f"{name} is not available, nothing to do")
    else:
        console.print(f"[bold]{name}[/bold]: [{status_style(result.status.value)}]{result.status.value}[/]")


def submit_cmd(
    image: str = typer.Argument(..., help="Image name, e.g. nginx or org/app"),
    user: Optional[int] = typer.Option(None, "--user", "-u", help="Submit as this user id"),
    force: bool = typer.Option(False, "--force", "-f", help="Queue even if already inspected"),
) -> None:
    """
    Queue an image for inspection if it exists on the registry.
    """
    name = _full_name(image, get_config().site.official_namespace)
    services = build_services()
    viewer = Authenticated(user_id=user) if user is not None else ANONYMOUS

    try:
        result = services.inspector().submit(name, viewer, force=force)
    finally:
        services.close()

    console.print(f"[bold]{name}[/bold]: [{status_style(result.status.value)}]{result.status.value}[/]")
