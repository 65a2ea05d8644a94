"""Content fingerprints of layer lists."""

from __future__ import annotations

from typing import Iterable

from imagewatch.models.image import ImageLayer
from imagewatch.utils.hashing import compute_hash


def fingerprint_layers(layers: Iterable[ImageLayer]) -> str:
    """Hash the ordered layer commands together.

    Layers without a command contribute their blob reference instead,
    so two images with the same build steps share a fingerprint even
    when their blobs were rebuilt.

    Args:
        layers: Layers in build order

    Returns:
        Hex sha256 digest
    """
    data = "".join(layer.command or layer.blob_sum for layer in layers)
    return compute_hash(data.encode("utf-8"))
