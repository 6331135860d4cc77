# models/api/messaging_response.py
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.domain.messaging_domain import MessageJob, Recipient


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SendMessageResponse(CamelModel):
    message_id: str = Field(..., alias="messageId")
    status: Literal["queued"] = "queued"


class RecipientResponse(CamelModel):
    line_user_id: str = Field(..., alias="lineUserId")
    display_name: str = Field(..., alias="displayName")
    profile_picture_url: str | None = Field(default=None, alias="profilePictureUrl")
    is_active: bool = Field(..., alias="isActive")
    followed_at: datetime | None = Field(default=None, alias="followedAt")
    last_message_at: datetime | None = Field(default=None, alias="lastMessageAt")

    @classmethod
    def from_domain(cls, recipient: Recipient) -> "RecipientResponse":
        return cls(
            line_user_id=recipient.external_user_id,
            display_name=recipient.display_name,
            profile_picture_url=recipient.avatar_url,
            is_active=recipient.is_active,
            followed_at=recipient.followed_at,
            last_message_at=recipient.last_message_at,
        )


class RecipientListResponse(CamelModel):
    users: list[RecipientResponse]
    count: int


class MessageJobResponse(CamelModel):
    id: str
    content: dict[str, Any]
    target: dict[str, Any]
    status: str
    scheduled_at: datetime | None = Field(default=None, alias="scheduledAt")
    created_at: datetime = Field(..., alias="createdAt")
    processed_at: datetime | None = Field(default=None, alias="processedAt")
    created_by: str | None = Field(default=None, alias="createdBy")
    total_recipients: int | None = Field(default=None, alias="totalRecipients")
    success_count: int | None = Field(default=None, alias="successCount")
    failed_user_ids: list[str] = Field(default_factory=list, alias="failedUserIds")
    error: str | None = None

    @classmethod
    def from_domain(cls, job: MessageJob) -> "MessageJobResponse":
        return cls(
            id=job.id,
            content={
                "type": job.content.type,
                "text": job.content.text,
                "imageUrl": job.content.image_url,
                "template": job.content.template,
            },
            target={"type": job.target.type, "userIds": job.target.user_ids},
            status=job.status,
            scheduled_at=job.scheduled_at,
            created_at=job.created_at,
            processed_at=job.processed_at,
            created_by=job.created_by,
            total_recipients=job.total_recipients,
            success_count=job.success_count,
            failed_user_ids=job.failed_recipient_ids,
            error=job.error,
        )


class MessageJobListResponse(CamelModel):
    messages: list[MessageJobResponse]
    count: int
