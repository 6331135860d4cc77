# models/domain/auth_domain.py
"""
Domain models for LINE Login: the transient login session, the external
profile, the local identity it resolves to, and the outcomes of a callback.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

PendingAction = Literal["login", "link"]

LINE_PROVIDER = "line"
LINE_PROVIDER_ID = "oidc.line"
KNOWN_PROVIDERS = ("line", "google", "password")


class AuthSession(BaseModel):
    """CSRF and replay artifacts for exactly one authorization attempt."""

    session_id: str
    state: str
    raw_nonce: str
    hashed_nonce: str
    pending_action: PendingAction = "login"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ValidatedCallback(BaseModel):
    """What the callback validator forwards once state has been checked."""

    code: str
    raw_nonce: str
    hashed_nonce: str
    pending_action: PendingAction


class LineTokens(BaseModel):
    """Token endpoint response. id_token is optional."""

    access_token: str
    id_token: str | None = None
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str = ""


class ExternalProfile(BaseModel):
    subject_id: str
    display_name: str | None = None
    avatar_url: str | None = None
    status_message: str | None = None


class LinkReport(BaseModel):
    """Snapshot of which known providers are associated with an identity."""

    is_linked_with_line: bool = False
    is_linked_with_google: bool = False
    is_linked_with_password: bool = False

    @classmethod
    def from_providers(cls, providers: set[str]) -> "LinkReport":
        return cls(**{f"is_linked_with_{name}": name in providers for name in KNOWN_PROVIDERS})


class LocalIdentity(BaseModel):
    uid: str
    display_name: str | None = None
    avatar_url: str | None = None
    linked_providers: set[str] = Field(default_factory=set)
    email: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_linked_with(self, provider: str) -> bool:
        return provider in self.linked_providers


class LinkOutcome(BaseModel):
    success: bool
    message: str


class IdentityResolution(BaseModel):
    """Result of looking up (or creating) the local identity for a login."""

    identity: LocalIdentity
    is_existing_user: bool
    link_info: LinkReport | None = None
    link_result: LinkOutcome | None = None


class SessionCredential(BaseModel):
    """Login succeeded end to end: a bearer credential was minted."""

    kind: Literal["session_credential"] = "session_credential"
    custom_token: str
    id_token: str | None = None
    profile: ExternalProfile
    resolution: IdentityResolution


class PartialProfileOnly(BaseModel):
    """
    Identity was resolved but no credential could be minted (or the flow was a
    link operation). The caller still gets the profile and link information.
    """

    kind: Literal["partial_profile_only"] = "partial_profile_only"
    id_token: str | None = None
    profile: ExternalProfile
    resolution: IdentityResolution
    credential_error: str | None = None


AuthResult = SessionCredential | PartialProfileOnly
