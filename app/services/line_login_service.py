"""
LINE Login Service for OAuth 2.0 / OpenID Connect.
Handles authorization URL generation, authorization-code exchange and
profile retrieval against the LINE Login endpoints.
"""

import asyncio
from urllib.parse import urlencode

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.auth_domain import ExternalProfile, LineTokens

logger = get_logger(__name__)

# OAuth configuration
LINE_AUTHORIZE_URL = "https://access.line.me/oauth2/v2.1/authorize"
LINE_TOKEN_URL = "https://api.line.me/oauth2/v2.1/token"
LINE_PROFILE_URL = "https://api.line.me/v2/profile"

LINE_LOGIN_SCOPES = ["profile", "openid"]

# Retry configuration
MAX_RETRIES = 3
BACKOFF_FACTOR = 2  # 2, 4 seconds
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class LineLoginError(Exception):
    """Base exception for LINE Login failures."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class MissingConfiguration(LineLoginError):
    def __init__(self, message: str):
        super().__init__(message, error_code="config_error")


class TokenExchangeFailed(LineLoginError):
    def __init__(self, message: str, response_data: dict | None = None):
        super().__init__(message, error_code="token_exchange_failed", response_data=response_data)


class ProfileFetchFailed(LineLoginError):
    def __init__(self, message: str, response_data: dict | None = None):
        super().__init__(message, error_code="profile_fetch_failed", response_data=response_data)


class LineLoginService:
    """
    Client for the LINE Login endpoints.

    Every outbound call carries LINE_REQUEST_TIMEOUT_SECONDS; a timeout is an
    ordinary failure of that call.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id if client_id is not None else settings.LINE_CHANNEL_ID
        self.client_secret = (
            client_secret if client_secret is not None else settings.LINE_CHANNEL_SECRET
        )
        self.redirect_uri = (
            redirect_uri if redirect_uri is not None else settings.line_callback_url()
        )
        self.timeout = settings.LINE_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    def validate_config(self, require_secret: bool = True) -> None:
        """Validate LINE Login configuration."""
        if not self.client_id:
            raise MissingConfiguration("LINE_CHANNEL_ID not configured")
        if not self.redirect_uri:
            raise MissingConfiguration("LINE_CALLBACK_URL not configured")
        if require_secret and not self.client_secret:
            raise MissingConfiguration("LINE_CHANNEL_SECRET not configured")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def build_authorization_url(self, state: str, hashed_nonce: str) -> str:
        """
        Build the LINE authorization URL for one login attempt.

        Args:
            state: CSRF protection state parameter
            hashed_nonce: SHA-256 hex of the session's raw nonce

        Raises:
            MissingConfiguration: If the channel id or callback URL is empty
        """
        self.validate_config(require_secret=False)

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "scope": " ".join(LINE_LOGIN_SCOPES),
            "nonce": hashed_nonce,
        }
        auth_url = f"{LINE_AUTHORIZE_URL}?{urlencode(params)}"

        logger.info(
            "LINE authorization URL generated",
            state_preview=preview(state),
            nonce_preview=preview(hashed_nonce),
            url_length=len(auth_url),
        )
        return auth_url

    async def _post_with_retry(self, url: str, data: dict, operation: str) -> httpx.Response:
        """
        Perform a form-encoded POST with retry/backoff on transient failures.
        """
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        async with self._client() as client:
            for attempt in range(1, MAX_RETRIES + 1):
                try:
                    response = await client.post(url, data=data, headers=headers)
                except httpx.RequestError as exc:
                    if attempt == MAX_RETRIES:
                        raise

                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "LINE request error, retrying",
                        operation=operation,
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "LINE transient status",
                        operation=operation,
                        status_code=response.status_code,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                return response

        raise LineLoginError(f"{operation} failed: retries exhausted")

    async def exchange_code_for_tokens(self, authorization_code: str) -> LineTokens:
        """
        Exchange an authorization code for access and ID tokens.

        Raises:
            MissingConfiguration: If client credentials are not configured
            TokenExchangeFailed: If LINE returns no access token or the call fails
        """
        self.validate_config()

        data = {
            "grant_type": "authorization_code",
            "code": authorization_code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        logger.info("Exchanging LINE authorization code", code_preview=preview(authorization_code))

        try:
            response = await self._post_with_retry(LINE_TOKEN_URL, data, operation="code_exchange")
        except httpx.RequestError as e:
            logger.error(
                "Network error during token exchange",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TokenExchangeFailed(f"Network error during token exchange: {e}") from e
        except LineLoginError as e:
            raise TokenExchangeFailed(str(e)) from e

        payload = _json_or_empty(response)

        if response.status_code != 200 or payload.get("error"):
            logger.warning(
                "LINE token endpoint rejected the code",
                status_code=response.status_code,
                error=payload.get("error"),
                error_description=payload.get("error_description"),
            )
            raise TokenExchangeFailed(
                payload.get("error_description") or "Failed to get access token",
                response_data=payload,
            )

        if not payload.get("access_token"):
            logger.warning("LINE token response has no access_token", keys=sorted(payload))
            raise TokenExchangeFailed("Failed to get access token", response_data=payload)

        tokens = LineTokens.model_validate(payload)
        if not tokens.id_token:
            logger.warning("LINE token response has no id_token; nonce check will be skipped")

        logger.info(
            "LINE tokens received",
            has_id_token=bool(tokens.id_token),
            expires_in=tokens.expires_in,
            scope=tokens.scope,
        )
        return tokens

    async def fetch_profile(self, access_token: str) -> ExternalProfile:
        """
        Fetch the authenticated user's profile.

        Raises:
            ProfileFetchFailed: If the call fails or the response lacks userId
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    LINE_PROFILE_URL, headers={"Authorization": f"Bearer {access_token}"}
                )
        except httpx.RequestError as e:
            logger.error(
                "Network error during profile fetch",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProfileFetchFailed(f"Network error during profile fetch: {e}") from e

        payload = _json_or_empty(response)

        if response.status_code != 200 or not payload.get("userId"):
            logger.warning(
                "LINE profile response unusable",
                status_code=response.status_code,
                has_user_id=bool(payload.get("userId")),
            )
            raise ProfileFetchFailed("Failed to get user information", response_data=payload)

        profile = ExternalProfile(
            subject_id=payload["userId"],
            display_name=payload.get("displayName"),
            avatar_url=payload.get("pictureUrl"),
            status_message=payload.get("statusMessage"),
        )
        logger.info("LINE profile fetched", subject_preview=preview(profile.subject_id))
        return profile


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# Singleton instance for application use
line_login_service = LineLoginService()
