"""
LINE Messaging API client: push, reply and follower profile lookups.
"""

import json

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.auth_domain import ExternalProfile
from app.models.domain.messaging_domain import SendResult

logger = get_logger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
LINE_REPLY_URL = "https://api.line.me/v2/bot/message/reply"
LINE_BOT_PROFILE_URL = "https://api.line.me/v2/bot/profile/{user_id}"


class LineMessagingError(Exception):
    """Custom exception for Messaging API failures."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _describe_http_error(response: httpx.Response) -> str:
    try:
        body = json.dumps(response.json(), ensure_ascii=False)
    except ValueError:
        body = response.text[:200]
    return f"HTTP {response.status_code}: {body}"


class LineMessagingClient:
    def __init__(
        self,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._access_token = access_token
        self.timeout = settings.LINE_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def access_token(self) -> str | None:
        return self._access_token or settings.LINE_MESSAGING_CHANNEL_ACCESS_TOKEN

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }

    async def push(self, user_id: str, messages: list[dict]) -> SendResult:
        """
        Push messages to one user. Never raises: every failure, including a
        timeout, becomes an unsuccessful SendResult.
        """
        if not self.access_token:
            logger.error("LINE_MESSAGING_CHANNEL_ACCESS_TOKEN is not configured")
            return SendResult(
                success=False,
                user_id=user_id,
                error="LINE_MESSAGING_CHANNEL_ACCESS_TOKEN is not configured",
            )

        try:
            async with self._client() as client:
                response = await client.post(
                    LINE_PUSH_URL,
                    json={"to": user_id, "messages": messages},
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.warning(
                "Push message request failed",
                user_preview=preview(user_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return SendResult(success=False, user_id=user_id, error=f"{type(e).__name__}: {e}")

        if response.status_code != 200:
            error = _describe_http_error(response)
            logger.warning("Push message rejected", user_preview=preview(user_id), error=error)
            return SendResult(success=False, user_id=user_id, error=error)

        logger.debug("Push message sent", user_preview=preview(user_id))
        return SendResult(success=True, user_id=user_id)

    async def reply(self, reply_token: str, messages: list[dict]) -> bool:
        """Reply within a webhook event. Failures are logged and reported as False."""
        if not self.access_token:
            logger.error("LINE_MESSAGING_CHANNEL_ACCESS_TOKEN is not configured")
            return False

        try:
            async with self._client() as client:
                response = await client.post(
                    LINE_REPLY_URL,
                    json={"replyToken": reply_token, "messages": messages},
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.warning("Reply request failed", error=str(e), error_type=type(e).__name__)
            return False

        if response.status_code != 200:
            logger.warning("Reply rejected", error=_describe_http_error(response))
            return False

        logger.info("Reply sent", message_count=len(messages))
        return True

    async def get_follower_profile(self, user_id: str) -> ExternalProfile:
        """
        Fetch a follower's profile by user id.

        Raises:
            LineMessagingError: Missing token, network failure or non-200 response
        """
        if not self.access_token:
            raise LineMessagingError("LINE_MESSAGING_CHANNEL_ACCESS_TOKEN is not configured")

        try:
            async with self._client() as client:
                response = await client.get(
                    LINE_BOT_PROFILE_URL.format(user_id=user_id),
                    headers={"Authorization": f"Bearer {self.access_token}"},
                )
        except httpx.HTTPError as e:
            raise LineMessagingError(f"Profile lookup failed: {e}") from e

        if response.status_code != 200:
            raise LineMessagingError(
                _describe_http_error(response), status_code=response.status_code
            )

        data = response.json()
        return ExternalProfile(
            subject_id=data.get("userId") or user_id,
            display_name=data.get("displayName"),
            avatar_url=data.get("pictureUrl"),
            status_message=data.get("statusMessage"),
        )


line_messaging_client = LineMessagingClient()
