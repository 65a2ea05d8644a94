"""Who is looking: the result of a session lookup."""

from typing import Union

from pydantic import BaseModel, Field


class Authenticated(BaseModel):
    """A logged-in user."""

    model_config = {"frozen": True}

    user_id: int = Field(description="User id")
    name: str = Field(default="", description="Display name")


class Anonymous(BaseModel):
    """No session, or a session without a user."""

    model_config = {"frozen": True}


Viewer = Union[Authenticated, Anonymous]

ANONYMOUS = Anonymous()
