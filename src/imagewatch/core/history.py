"""Turning manifest history into versions and layers."""

from __future__ import annotations

import json

from imagewatch.models.image import ImageLayer, ImageVersion
from imagewatch.models.manifest import Manifest
from imagewatch.utils.logging import get_logger
from imagewatch.utils.timeutil import parse_timestamp

logger = get_logger(__name__)

SHELL_PREFIX = "/bin/sh -c"
NOP_MARKER = "#(nop)"
COPY_PREFIX = "%s %s in %s"


def format_history(cmd_parts: list[str] | None) -> str:
    """Make a raw history command human readable.

    ``/bin/sh -c #(nop) CMD ["nginx"]`` becomes ``CMD ["nginx"]`` and
    ``/bin/sh -c apt-get update`` becomes ``RUN apt-get update``.

    Args:
        cmd_parts: The ``Cmd`` array from the layer's container config

    Returns:
        Dockerfile-style command, or an empty string
    """
    cmd = " ".join(cmd_parts or []).strip()
    if cmd.startswith(SHELL_PREFIX):
        cmd = cmd[len(SHELL_PREFIX):].strip()

    if cmd.startswith(NOP_MARKER):
        cmd = cmd[len(NOP_MARKER):].strip()
        if cmd.startswith(COPY_PREFIX):
            cmd = cmd[len(COPY_PREFIX):]
    elif cmd:
        cmd = f"RUN {cmd}"

    return cmd


def version_from_manifest(manifest: Manifest, image_name: str) -> ImageVersion:
    """Build a version record from the newest history entry of a manifest.

    Args:
        manifest: Parsed manifest
        image_name: Owning image name

    Returns:
        Version without size, layers or fingerprint

    Raises:
        ValueError: If the manifest has no history or the entry is not JSON
    """
    if not manifest.history:
        raise ValueError("No history for this image")

    try:
        v1c = manifest.history[0].decode()
    except ValueError as e:
        raise ValueError(f"Error unmarshalling history: {e}") from e

    created = parse_timestamp(v1c.created)
    if created is None:
        logger.info("Couldn't get created time for %s from string %r", image_name, v1c.created)

    labels = v1c.labels
    return ImageVersion(
        image_name=image_name,
        sha=v1c.id,
        author=v1c.author,
        labels=json.dumps(labels, sort_keys=True) if labels else "",
        created=created,
        layer_count=len(manifest.fs_layers),
    )


def layers_from_manifest(manifest: Manifest, layer_sizes: list[int]) -> list[ImageLayer]:
    """Build the layer list in build order (oldest first).

    Args:
        manifest: Parsed manifest, newest entry first
        layer_sizes: Per-layer sizes aligned with ``manifest.history``

    Raises:
        ValueError: If sizes or blob references do not line up with the history
    """
    if len(layer_sizes) != len(manifest.history) or len(manifest.fs_layers) != len(manifest.history):
        raise ValueError(
            f"History has {len(manifest.history)} entries but got {len(layer_sizes)} sizes "
            f"and {len(manifest.fs_layers)} blobs"
        )

    layers = []
    for entry, fs_layer, size in zip(manifest.history, manifest.fs_layers, layer_sizes):
        v1c = entry.decode()
        layers.append(
            ImageLayer(
                blob_sum=fs_layer.blob_sum,
                command=format_history(v1c.container_config.cmd),
                download_size=size,
            )
        )

    layers.reverse()
    return layers
