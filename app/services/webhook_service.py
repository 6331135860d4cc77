"""
Routes verified LINE webhook events to their handlers.

Every event in a delivery is handled in its own coroutine with its own error
capture, so one failing handler never affects its siblings or the HTTP answer.
"""

import asyncio
from collections.abc import Awaitable, Callable

from app.infrastructure.observability.logging import get_logger, preview
from app.repositories.recipient_repository import RecipientRepository, recipient_repository
from app.services.line_messaging_client import (
    LineMessagingClient,
    LineMessagingError,
    line_messaging_client,
)

logger = get_logger(__name__)

GREETING_KEYWORDS = ("hello", "こんにちは")
HELP_KEYWORDS = ("help", "ヘルプ")

GREETING_REPLY = "こんにちは！お元気ですか？ / Hello! How are you?"
HELP_REPLY = (
    "使い方:\n- 「こんにちは」でご挨拶\n- 「ヘルプ」でこのメッセージを表示\n\n"
    "Usage:\n- Say 'Hello' for greeting\n- Say 'Help' to show this message"
)
WELCOME_MESSAGES = [
    {
        "type": "text",
        "text": "友だち追加ありがとうございます！🎉\nThank you for adding me as a friend! 🎉",
    },
    {
        "type": "text",
        "text": (
            "「ヘルプ」と送信すると使い方を表示します。\n"
            "Send 'Help' to see how to use this bot."
        ),
    },
]


def build_text_replies(text: str) -> list[dict]:
    """Echo the message back, plus canned answers for known keywords."""
    replies = [{"type": "text", "text": f"あなたのメッセージ「{text}」を受け取りました！"}]

    lowered = text.lower()
    if any(keyword in lowered for keyword in GREETING_KEYWORDS):
        replies.append({"type": "text", "text": GREETING_REPLY})
    if any(keyword in lowered for keyword in HELP_KEYWORDS):
        replies.append({"type": "text", "text": HELP_REPLY})
    return replies


def _source_user_id(event: dict) -> str | None:
    return (event.get("source") or {}).get("userId")


class EventRouter:
    def __init__(
        self,
        client: LineMessagingClient | None = None,
        recipients: RecipientRepository | None = None,
    ):
        self.client = client or line_messaging_client
        self.recipients = recipients or recipient_repository
        self.handlers: dict[str, Callable[[dict], Awaitable[None]]] = {
            "message": self.handle_message,
            "follow": self.handle_follow,
            "unfollow": self.handle_unfollow,
        }

    async def route_events(self, events: list[dict]) -> dict:
        """
        Handle a batch of events concurrently.

        Returns:
            Counts of handled and failed events
        """
        outcomes = await asyncio.gather(*(self._guarded(event) for event in events))
        failed = sum(1 for ok in outcomes if not ok)

        logger.info("Webhook events routed", event_count=len(events), failed=failed)
        return {"handled": len(events) - failed, "failed": failed}

    async def _guarded(self, event: dict) -> bool:
        event_type = None
        try:
            event_type = event.get("type")
            handler = self.handlers.get(event_type)
            if handler is None:
                logger.info("Ignoring unhandled webhook event", event_type=event_type)
                return True

            await handler(event)
            return True
        except Exception as e:
            logger.error(
                "Webhook event handler failed",
                event_type=repr(event_type),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def handle_message(self, event: dict) -> None:
        message = event.get("message") or {}
        if message.get("type") != "text":
            logger.debug("Ignoring non-text message", message_type=message.get("type"))
            return

        text = message.get("text") or ""
        user_id = _source_user_id(event)
        logger.info(
            "Text message received",
            user_preview=preview(user_id or ""),
            text_length=len(text),
        )

        if user_id:
            await self.recipients.touch_last_message(user_id)

        reply_token = event.get("replyToken")
        if reply_token:
            await self.client.reply(reply_token, build_text_replies(text))

    async def handle_follow(self, event: dict) -> None:
        user_id = _source_user_id(event)
        if not user_id:
            logger.warning("Follow event without a user id")
            return

        display_name = avatar_url = None
        try:
            profile = await self.client.get_follower_profile(user_id)
            display_name = profile.display_name
            avatar_url = profile.avatar_url
        except LineMessagingError as e:
            logger.warning(
                "Follower profile unavailable, saving with defaults",
                user_preview=preview(user_id),
                error=str(e),
            )

        await self.recipients.upsert_follower(user_id, display_name, avatar_url)

        reply_token = event.get("replyToken")
        if reply_token:
            await self.client.reply(reply_token, WELCOME_MESSAGES)

    async def handle_unfollow(self, event: dict) -> None:
        user_id = _source_user_id(event)
        if not user_id:
            logger.warning("Unfollow event without a user id")
            return

        found = await self.recipients.deactivate(user_id)
        logger.info("Recipient unfollowed", user_preview=preview(user_id), known=found)


event_router = EventRouter()


# Convenience function for easy import
async def route_webhook_events(events: list[dict]) -> dict:
    return await event_router.route_events(events)
