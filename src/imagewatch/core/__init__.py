"""Core functionality for imagewatch."""

from imagewatch.core.fingerprint import fingerprint_layers
from imagewatch.core.history import format_history, layers_from_manifest, version_from_manifest
from imagewatch.core.inspector import InspectionResult, Inspector
from imagewatch.core.lineage import LineageMatcher, official_filter
from imagewatch.core.notifications import NotificationDispatcher, NotificationSender
from imagewatch.core.reconcile import TagReconciler
from imagewatch.core.worker import InspectionWorker, NotificationWorker

__all__ = [
    "InspectionResult",
    "InspectionWorker",
    "Inspector",
    "LineageMatcher",
    "NotificationDispatcher",
    "NotificationSender",
    "NotificationWorker",
    "TagReconciler",
    "fingerprint_layers",
    "format_history",
    "layers_from_manifest",
    "official_filter",
    "version_from_manifest",
]
