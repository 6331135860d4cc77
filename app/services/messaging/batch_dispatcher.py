"""
Windowed fan-out of one message to many recipients.

Recipients are sent to in windows of `window_size`: every push in a window runs
concurrently, the whole window is awaited, then the dispatcher pauses briefly
before the next window. A failed push is recorded and never stops the batch.
"""

import asyncio

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import (
    BatchSendResult,
    MessageContent,
    Recipient,
    SendResult,
)
from app.services.line_messaging_client import LineMessagingClient, line_messaging_client

logger = get_logger(__name__)


class InvalidMessageContent(ValueError):
    """Content cannot be turned into a LINE message; nothing was sent."""

    error_code = "invalid_message_content"


def format_line_messages(content: MessageContent) -> list[dict]:
    """
    Convert message content into LINE Messaging API message objects.

    Raises:
        InvalidMessageContent: Unknown type or missing required field
    """
    if content.type == "text":
        if not content.text:
            raise InvalidMessageContent("Text message requires text content")
        return [{"type": "text", "text": content.text}]

    if content.type == "image":
        if not content.image_url:
            raise InvalidMessageContent("Image message requires imageUrl")
        return [
            {
                "type": "image",
                "originalContentUrl": content.image_url,
                "previewImageUrl": content.image_url,
            }
        ]

    if content.type == "template":
        if not content.template:
            raise InvalidMessageContent("Template message requires template content")
        return [
            {
                "type": "template",
                "altText": content.text or "Template message",
                "template": content.template,
            }
        ]

    raise InvalidMessageContent(f"Unsupported message type: {content.type}")


class BatchDispatcher:
    def __init__(
        self,
        client: LineMessagingClient | None = None,
        window_size: int | None = None,
        window_pause_seconds: float | None = None,
    ):
        config = settings.get_dispatch_config()
        self.client = client or line_messaging_client
        self.window_size = window_size or config["window_size"]
        self.window_pause_seconds = (
            window_pause_seconds
            if window_pause_seconds is not None
            else config["window_pause_seconds"]
        )

    async def dispatch(
        self, recipients: list[Recipient], content: MessageContent
    ) -> BatchSendResult:
        """
        Deliver `content` to every recipient.

        Raises:
            InvalidMessageContent: Before any delivery is attempted
        """
        messages = format_line_messages(content)
        total = len(recipients)

        logger.info(
            "Starting batch dispatch",
            recipient_count=total,
            window_size=self.window_size,
            message_type=content.type,
        )

        results: list[SendResult] = []
        for start in range(0, total, self.window_size):
            window = recipients[start : start + self.window_size]
            window_results = await asyncio.gather(
                *(self._send_one(recipient, messages) for recipient in window)
            )
            results.extend(window_results)

            if start + self.window_size < total and self.window_pause_seconds:
                await asyncio.sleep(self.window_pause_seconds)

        success_count = sum(1 for result in results if result.success)
        failed_user_ids = [result.user_id for result in results if not result.success]

        logger.info(
            "Batch dispatch completed",
            success_count=success_count,
            failed_count=len(failed_user_ids),
            total=total,
        )

        return BatchSendResult(
            all_success=success_count == total,
            success_count=success_count,
            failed_user_ids=failed_user_ids,
            error=f"{len(failed_user_ids)} users failed" if failed_user_ids else None,
        )

    async def _send_one(self, recipient: Recipient, messages: list[dict]) -> SendResult:
        user_id = recipient.external_user_id
        try:
            return await self.client.push(user_id, messages)
        except Exception as e:
            # push() reports its own failures; this covers anything unexpected
            logger.error(
                "Unexpected push failure",
                error=str(e),
                error_type=type(e).__name__,
            )
            return SendResult(success=False, user_id=user_id, error=str(e))


batch_dispatcher = BatchDispatcher()
