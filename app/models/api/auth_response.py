# models/api/auth_response.py
"""
LINE Login API response models. Field names are serialized in camelCase to
match what browser and native clients already expect.
"""

from pydantic import BaseModel, ConfigDict, Field

from app.models.domain.auth_domain import (
    LINE_PROVIDER,
    LINE_PROVIDER_ID,
    AuthResult,
    LinkOutcome,
    LinkReport,
    SessionCredential,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LineAuthURLResponse(BaseModel):
    """Authorization URL for clients that open the browser themselves."""

    auth_url: str = Field(..., description="LINE authorization URL")
    state: str = Field(..., description="OAuth state parameter")


class LineUserResponse(CamelModel):
    uid: str
    display_name: str | None = Field(default=None, alias="displayName")
    photo_url: str | None = Field(default=None, alias="photoURL")
    provider: str = LINE_PROVIDER
    provider_id: str = Field(default=LINE_PROVIDER_ID, alias="providerId")


class LinkInfoResponse(CamelModel):
    is_linked_with_line: bool = Field(..., alias="isLinkedWithLine")
    is_linked_with_google: bool = Field(..., alias="isLinkedWithGoogle")
    is_linked_with_password: bool = Field(..., alias="isLinkedWithPassword")

    @classmethod
    def from_report(cls, report: LinkReport) -> "LinkInfoResponse":
        return cls(**report.model_dump())


class LinkResultResponse(CamelModel):
    success: bool
    message: str

    @classmethod
    def from_outcome(cls, outcome: LinkOutcome) -> "LinkResultResponse":
        return cls(success=outcome.success, message=outcome.message)


class LineCallbackResponse(CamelModel):
    """Outcome of a completed LINE callback."""

    custom_token: str | None = Field(default=None, alias="customToken")
    id_token: str | None = Field(default=None, alias="idToken")
    user: LineUserResponse
    is_existing_user: bool = Field(..., alias="isExistingUser")
    link_info: LinkInfoResponse | None = Field(default=None, alias="linkInfo")
    link_result: LinkResultResponse | None = Field(default=None, alias="linkResult")
    credential_error: str | None = Field(default=None, alias="credentialError")

    @classmethod
    def from_result(cls, result: AuthResult) -> "LineCallbackResponse":
        profile = result.profile
        resolution = result.resolution
        return cls(
            custom_token=result.custom_token if isinstance(result, SessionCredential) else None,
            id_token=result.id_token,
            user=LineUserResponse(
                uid=profile.subject_id,
                display_name=profile.display_name,
                photo_url=profile.avatar_url,
            ),
            is_existing_user=resolution.is_existing_user,
            link_info=(
                LinkInfoResponse.from_report(resolution.link_info)
                if resolution.link_info
                else None
            ),
            link_result=(
                LinkResultResponse.from_outcome(resolution.link_result)
                if resolution.link_result
                else None
            ),
            credential_error=getattr(result, "credential_error", None),
        )
