"""imagewatch - Container image inspection and change notification.

imagewatch inspects images published to a Docker Hub style registry,
records their versions, layers and fingerprints, works out which images
they are built on, and notifies subscribers by webhook when tags change.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
