"""Main CLI entry point for imagewatch."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from imagewatch.cli import inspect, lineage, worker

app = typer.Typer(
    name="imagewatch",
    help="Inspect container images and watch their tags for changes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register subcommands
app.command(name="inspect")(inspect.inspect_cmd)
app.command(name="size")(inspect.size_cmd)
app.command(name="submit")(inspect.submit_cmd)
app.command(name="lineage")(lineage.lineage_cmd)
app.command(name="fingerprint")(lineage.fingerprint_cmd)
app.add_typer(worker.app, name="worker")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a config file"),
) -> None:
    """
    imagewatch: container image inspection and change notification.

    - [bold]inspect[/bold]: Refresh an image's versions and tags
    - [bold]size[/bold]: Fill in sizes, layers and fingerprints
    - [bold]submit[/bold]: Queue an image for inspection
    - [bold]lineage[/bold]: Show parent and identical images
    - [bold]fingerprint[/bold]: Hash a list of layer commands
    - [bold]worker[/bold]: Run queue consumers
    """
    from imagewatch.utils.config import load_config, set_config
    from imagewatch.utils.errors import ConfigurationError
    from imagewatch.utils.logging import configure_logging

    try:
        loaded = load_config(config)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    set_config(loaded)

    if verbose:
        configure_logging(level="DEBUG", structured=loaded.logging.structured)
    elif quiet:
        configure_logging(level="WARNING", structured=loaded.logging.structured)
    else:
        configure_logging(level=loaded.logging.level, structured=loaded.logging.structured)


@app.command()
def version() -> None:
    """Show the imagewatch version."""
    from imagewatch import __version__

    console.print(f"imagewatch version {__version__}")


if __name__ == "__main__":
    app()
