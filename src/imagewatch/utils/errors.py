"""Error handling utilities for imagewatch."""

from __future__ import annotations

import re
from typing import Any

from imagewatch.models.common import OperationError


class ImageWatchError(Exception):
    """Base exception for imagewatch."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_operation_error(self) -> OperationError:
        """Convert to OperationError model."""
        return OperationError(code=self.code, message=self.message, details=self.details)


class ImageNotFoundError(ImageWatchError):
    """Image is not known to the store."""

    def __init__(self, image_name: str):
        super().__init__(
            f"Image not found: {image_name}",
            code="IMAGE_NOT_FOUND",
            details={"image_name": image_name},
        )


class ValidationError(ImageWatchError):
    """Validation failed."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class ConfigurationError(ImageWatchError):
    """Configuration error."""

    def __init__(self, message: str, config_key: str | None = None):
        details = {"config_key": config_key} if config_key else {}
        super().__init__(message, code="CONFIG_ERROR", details=details)


class StoreError(ImageWatchError):
    """The database could not be read or written."""

    def __init__(self, message: str, operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, code="STORE_ERROR", details=details)


class ReconciliationError(ImageWatchError):
    """Saving an image and its tags failed and the unit of work was rolled back."""

    def __init__(self, image_name: str, cause: Exception | None = None):
        message = f"Failed to reconcile tags for {image_name}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(
            message,
            code="RECONCILIATION_ERROR",
            details={"image_name": image_name},
        )
        self.image_name = image_name


_IMAGE_NAME_RE = re.compile(r"^[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)?$")


def validate_image_name(name: str) -> None:
    """Validate an image name of the form ``namespace/name`` or ``name``.

    Args:
        name: Image name to validate

    Raises:
        ValidationError: If the name is invalid
    """
    if not name:
        raise ValidationError("Image name cannot be empty", field="name")

    if name.startswith("-"):
        raise ValidationError("Image name cannot start with '-'", field="name")

    if ":" in name or "@" in name:
        raise ValidationError("Image name must not include a tag or digest", field="name")

    if not _IMAGE_NAME_RE.match(name):
        raise ValidationError(f"Invalid image name: {name}", field="name")

