"""CLI commands for fingerprints and lineage."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.panel import Panel
from rich.table import Table

from imagewatch.cli.utils import console, fail_with, format_size, open_store, output_json
from imagewatch.core.fingerprint import fingerprint_layers
from imagewatch.core.lineage import LineageMatcher
from imagewatch.models.image import ImageLayer
from imagewatch.models.viewer import ANONYMOUS, Authenticated
from imagewatch.utils.config import get_config
from imagewatch.utils.errors import ImageWatchError


def fingerprint_cmd(
    commands: List[str] = typer.Argument(..., help="Layer commands in build order"),
) -> None:
    """
    Print the fingerprint of a list of layer commands.

    Example:
        imagewatch fingerprint "ADD file:abc in /" 'CMD ["sh"]'
    """
    layers = [ImageLayer(command=c) for c in commands]
    console.print(fingerprint_layers(layers))


def lineage_cmd(
    image: str = typer.Argument(..., help="Full image name, e.g. library/nginx"),
    sha: str = typer.Argument(..., help="Version identifier"),
    user: Optional[int] = typer.Option(None, "--user", "-u", help="View as this user id"),
    json_output: bool = typer.Option(False, "--json", help="Output the lineage as JSON"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON output to a file"),
) -> None:
    """
    Show the images a version is built on and the images identical to it.

    Example:
        imagewatch lineage org/app 3f1c2d... --json
    """
    config = get_config()
    store = open_store(config)
    viewer = Authenticated(user_id=user) if user is not None else ANONYMOUS

    try:
        lineage = LineageMatcher(store, config.site).version_lineage(image, sha, viewer)
    except ImageWatchError as e:
        fail_with(e, json_output)

    if json_output or output:
        output_json(lineage, output)
        return

    version = lineage.version
    lines = [
        f"[bold]{version.image_name}[/bold] @ {version.sha[:12]}",
        f"Tags: {', '.join(version.tag_names) or '-'}",
        f"Download size: {format_size(version.download_size)}",
        f"Fingerprint: {version.fingerprint or '-'}",
    ]
    if lineage.license:
        lines.append(f"License: {lineage.license.code} {lineage.license.url}".rstrip())
    if lineage.vcs:
        lines.append(f"Source: {lineage.vcs.url}")
    console.print(Panel("\n".join(lines), title="Version"))

    for title, matches in (("Parents", lineage.parents), ("Identical", lineage.identical)):
        if not matches:
            continue
        table = Table(title=title)
        table.add_column("Image")
        table.add_column("Version")
        table.add_column("Tags")
        table.add_column("Page")
        for match in matches:
            table.add_row(match.image_name, match.sha[:12], ", ".join(match.tags), match.page_url)
        console.print(table)

    if lineage.layers:
        table = Table(title="Own layers" if lineage.parents else "Layers")
        table.add_column("#", justify="right")
        table.add_column("Command")
        table.add_column("Size", justify="right")
        for i, layer in enumerate(lineage.layers, 1):
            table.add_row(str(i), layer.command or layer.blob_sum, format_size(layer.download_size))
        console.print(table)
