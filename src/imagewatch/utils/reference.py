"""Image name parsing helpers."""

from __future__ import annotations

OFFICIAL_NAMESPACE = "library"


def parse_image_name(image_name: str) -> tuple[str, str, str]:
    """Split an image name into namespace, repository and tag.

    Official images have no namespace in their short form, so
    ``nginx`` becomes ``("library", "nginx", "latest")``.

    Args:
        image_name: Name such as ``nginx``, ``org/app`` or ``org/app:1.0``

    Returns:
        Tuple of (namespace, repository, tag)
    """
    tag = "latest"
    if ":" in image_name:
        image_name, tag = image_name.split(":", 1)

    if "/" in image_name:
        namespace, repository = image_name.split("/", 1)
    else:
        namespace, repository = OFFICIAL_NAMESPACE, image_name

    return namespace, repository, tag


def display_name(image_name: str, official_namespace: str = OFFICIAL_NAMESPACE) -> str:
    """Strip the official namespace prefix for display."""
    prefix = f"{official_namespace}/"
    if image_name.startswith(prefix):
        return image_name[len(prefix):]
    return image_name


def is_official(image_name: str, official_namespace: str = OFFICIAL_NAMESPACE) -> bool:
    """Return True if the image lives in the official namespace."""
    return image_name.startswith(f"{official_namespace}/")


IMAGE_PAGE_PATH = "/images/"
PRIVATE_REGISTRY_PATH = "/registry/docker"


def page_url(
    site_url: str,
    image_name: str,
    is_private: bool = False,
    official_namespace: str = OFFICIAL_NAMESPACE,
) -> str:
    """Build the public page URL of an image.

    Private images live under a registry-specific path.
    """
    name = display_name(image_name, official_namespace)
    base = site_url.rstrip("/")
    if is_private:
        return f"{base}{PRIVATE_REGISTRY_PATH}{IMAGE_PAGE_PATH}{name}"
    return f"{base}{IMAGE_PAGE_PATH}{name}"
