"""Subscription and webhook delivery models."""

from datetime import datetime

from pydantic import BaseModel, Field


class Subscription(BaseModel):
    """A user's request to be told when an image changes."""

    model_config = {"frozen": True}

    id: int | None = Field(default=None, description="Subscription id")
    user_id: int = Field(description="Subscribing user")
    image_name: str = Field(description="Watched image")
    webhook_url: str = Field(description="Where change payloads are posted")


class NotificationMessage(BaseModel):
    """One webhook delivery task and the outcome of its latest attempt."""

    id: int | None = Field(default=None, description="Message id, set when saved")
    subscription_id: int = Field(description="Subscription this message was built for")
    image_name: str = Field(description="Changed image")
    webhook_url: str = Field(description="Target URL")
    message: str = Field(description="Serialized changeset JSON")
    attempts: int = Field(default=0, description="Delivery attempts so far")
    status_code: int = Field(default=0, description="Status code of the last attempt")
    response: str = Field(default="", description="Response body of the last attempt")
    sent_at: datetime | None = Field(default=None, description="Time of the last attempt")
    queued: bool = Field(default=False, description="Whether the id has been handed to the notification queue")

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status_code <= 299
