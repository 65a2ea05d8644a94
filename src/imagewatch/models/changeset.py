"""Changeset produced by tag reconciliation."""

from typing import Any

from pydantic import BaseModel, Field

from imagewatch.models.image import Tag


class Changeset(BaseModel):
    """New, changed and deleted tags from one reconciliation of an image."""

    model_config = {"frozen": True}

    image_name: str = Field(description="Image name for display (official prefix stripped)")
    text: str = Field(default="", description="Human-readable summary")
    new_tags: list[Tag] = Field(default_factory=list, description="Tags that did not exist before")
    changed_tags: list[Tag] = Field(default_factory=list, description="Tags that moved to another version")
    deleted_tags: list[Tag] = Field(default_factory=list, description="Tags that disappeared")

    @property
    def is_empty(self) -> bool:
        return not (self.new_tags or self.changed_tags or self.deleted_tags)

    def to_payload(self) -> dict[str, Any]:
        """Build the webhook body."""

        def tag_list(tags: list[Tag]) -> list[dict[str, str]]:
            return [{"tag": t.tag, "sha": t.sha} for t in tags]

        return {
            "text": self.text,
            "image_name": self.image_name,
            "new_tags": tag_list(self.new_tags),
            "changed_tags": tag_list(self.changed_tags),
            "deleted_tags": tag_list(self.deleted_tags),
        }
