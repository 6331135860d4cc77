# models/api/auth_request.py
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class LineCallbackRequest(BaseModel):
    """Body posted by the client after LINE redirects back with a code."""

    model_config = ConfigDict(populate_by_name=True)

    code: str | None = Field(default=None, description="Authorization code from LINE")
    state: str | None = Field(default=None, description="State echoed back by LINE")
    auth_action: Literal["login", "link"] | None = Field(
        default=None, alias="authAction", description="Client's view of the pending action"
    )
    # Accepted for client compatibility; the stored session is authoritative.
    nonce: str | None = Field(default=None, description="Raw nonce held by the client")
    hashed_nonce: str | None = Field(
        default=None, alias="hashedNonce", description="Hashed nonce held by the client"
    )
