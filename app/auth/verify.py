"""
verify.py
---------
Purpose:
    Bearer verification for the messaging API routes.

Notes:
    - Accepts the session credentials minted at LINE Login time.
    - Provides `auth_dependency` for protected routes.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.services.credential_service import CredentialIssuanceUnavailable, decode_session_token

_security = HTTPBearer()


def verify_jwt(token: str) -> dict:
    try:
        return decode_session_token(token)
    except CredentialIssuanceUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session verification is not configured",
        ) from e
    except jwt.PyJWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)
