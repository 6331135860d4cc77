# models/api/messaging_request.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.domain.messaging_domain import MessageContent, MessageTarget


class MessageContentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="text, image or template")
    text: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    template: dict[str, Any] | None = None

    def to_domain(self) -> MessageContent:
        return MessageContent(
            type=self.type, text=self.text, image_url=self.image_url, template=self.template
        )


class MessageTargetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="all, single or list")
    user_ids: list[str] | None = Field(default=None, alias="userIds")

    def to_domain(self) -> MessageTarget:
        return MessageTarget(type=self.type, user_ids=self.user_ids)


class SendMessageRequest(BaseModel):
    """Queue a message for immediate or scheduled delivery."""

    model_config = ConfigDict(populate_by_name=True)

    content: MessageContentRequest | None = None
    target: MessageTargetRequest | None = None
    scheduled_at: datetime | None = Field(
        default=None, alias="scheduledAt", description="Deliver no earlier than this time"
    )
