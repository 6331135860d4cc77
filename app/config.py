from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # LINE Login (OAuth2 / OIDC) settings
    LINE_CHANNEL_ID: str | None = None
    LINE_CHANNEL_SECRET: str | None = None
    LINE_CALLBACK_URL: str | None = None
    LINE_VERIFY_ID_TOKEN_SIGNATURE: bool = False

    # LINE Messaging API settings
    LINE_MESSAGING_CHANNEL_ACCESS_TOKEN: str | None = None
    LINE_MESSAGING_CHANNEL_SECRET: str | None = None

    # Outbound request timeout for every LINE endpoint
    LINE_REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Session credential settings
    SESSION_TOKEN_SECRET: str | None = None
    SESSION_TOKEN_ISSUER: str = "line-bridge"
    SESSION_TOKEN_AUDIENCE: str = "line-bridge-clients"
    SESSION_TOKEN_TTL_SECONDS: int = 3600

    # Transient login session (state + nonce) settings
    AUTH_SESSION_TTL_SECONDS: int = 600
    AUTH_SESSION_COOKIE_SECURE: bool = True

    # Redis settings
    REDIS_URL: str | None = None
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # =================================================================
    # MESSAGE DISPATCH SETTINGS
    # =================================================================
    DISPATCH_WINDOW_SIZE: int = 5
    DISPATCH_WINDOW_PAUSE_MS: int = 100
    TARGET_LOOKUP_BATCH_SIZE: int = 10
    SCHEDULER_INTERVAL_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def line_callback_url(self) -> str | None:
        """Get the LINE Login redirect URI (no default outside development)."""
        if self.LINE_CALLBACK_URL:
            return self.LINE_CALLBACK_URL
        if self.environment == "development":
            return "http://localhost:3000"
        return None

    def webhook_secret(self) -> str | None:
        """Signing secret for inbound webhooks."""
        return self.LINE_MESSAGING_CHANNEL_SECRET

    def redis_url(self) -> str:
        """
        Build the Redis connection URL.

        REDIS_URL wins; otherwise the Upstash REST URL is converted into its
        native TLS endpoint, e.g. https://redis-123.upstash.io ->
        rediss://default:<token>@redis-123.upstash.io:6379
        """
        if self.REDIS_URL:
            return self.REDIS_URL
        if self.UPSTASH_REDIS_REST_URL and self.UPSTASH_REDIS_REST_TOKEN:
            host = urlparse(self.UPSTASH_REDIS_REST_URL).hostname or ""
            return f"rediss://default:{self.UPSTASH_REDIS_REST_TOKEN}@{host}:6379"
        return "redis://localhost:6379/0"

    def get_dispatch_config(self) -> dict:
        """
        Get fan-out dispatch configuration.
        Values are clamped so a misconfiguration cannot produce unbounded fan-out.
        """
        return {
            "window_size": max(1, min(self.DISPATCH_WINDOW_SIZE, 50)),
            "window_pause_seconds": max(0, self.DISPATCH_WINDOW_PAUSE_MS) / 1000,
            "lookup_batch_size": max(1, self.TARGET_LOOKUP_BATCH_SIZE),
        }


settings = Settings()
