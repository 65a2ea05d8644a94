"""Hub repository summary model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HubInfo(BaseModel):
    """Repository summary from the hub ``/v2/repositories`` API."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(default="")
    namespace: str = Field(default="")
    description: str | None = Field(default="")
    full_description: str | None = Field(default="")
    is_automated: bool = Field(default=False)
    is_private: bool = Field(default=False)
    last_updated: datetime | None = Field(default=None)
    pull_count: int = Field(default=0)
    star_count: int = Field(default=0)
