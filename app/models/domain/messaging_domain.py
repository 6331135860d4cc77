# models/domain/messaging_domain.py
"""
Domain models for roster messaging: recipients, outbound message jobs and
per-recipient delivery outcomes.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

JobStatus = Literal["pending", "processing", "completed", "failed"]


class Recipient(BaseModel):
    """A LINE account that follows the channel."""

    external_user_id: str
    display_name: str = "Unknown User"
    avatar_url: str | None = None
    is_active: bool = True
    followed_at: datetime | None = None
    last_message_at: datetime | None = None


class MessageContent(BaseModel):
    # type is a plain string so unsupported shapes reach the dispatcher's
    # pre-flight check instead of failing at deserialization.
    type: str
    text: str | None = None
    image_url: str | None = None
    template: dict[str, Any] | None = None


class MessageTarget(BaseModel):
    type: str
    user_ids: list[str] | None = None


class MessageJob(BaseModel):
    id: str
    content: MessageContent
    target: MessageTarget
    status: JobStatus = "pending"
    scheduled_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    processed_at: datetime | None = None
    created_by: str | None = None
    total_recipients: int | None = None
    success_count: int | None = None
    failed_recipient_ids: list[str] = Field(default_factory=list)
    error: str | None = None

    @field_validator("scheduled_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def is_due(self, now: datetime | None = None) -> bool:
        """Unscheduled jobs are always due."""
        if self.scheduled_at is None:
            return True
        return self.scheduled_at <= (now or datetime.now(UTC))

    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


class SendResult(BaseModel):
    success: bool
    user_id: str
    error: str | None = None


class BatchSendResult(BaseModel):
    all_success: bool
    success_count: int
    failed_user_ids: list[str] = Field(default_factory=list)
    error: str | None = None
