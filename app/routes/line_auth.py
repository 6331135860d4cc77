"""
LINE Login Routes
HTTP endpoints that start the LINE authorization redirect and complete the
callback into a session credential.
"""

from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from app.auth.id_token import NonceVerificationFailed
from app.config import settings
from app.infrastructure.observability.logging import get_logger, preview
from app.models.api.auth_request import LineCallbackRequest
from app.models.api.auth_response import LineAuthURLResponse, LineCallbackResponse
from app.services.auth_session_service import (
    SESSION_COOKIE_NAME,
    AuthSessionError,
    SessionStoreUnavailable,
)
from app.services.line_auth_service import (
    complete_line_login,
    consume_login_session,
    start_line_login,
)
from app.services.line_login_service import (
    MissingConfiguration,
    ProfileFetchFailed,
    TokenExchangeFailed,
)

logger = get_logger(__name__)

router = APIRouter(tags=["line-auth"])

COOKIE_PATH = "/"


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session_id,
        max_age=settings.AUTH_SESSION_TTL_SECONDS,
        path=COOKIE_PATH,
        secure=settings.AUTH_SESSION_COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path=COOKIE_PATH,
        secure=settings.AUTH_SESSION_COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )


def _callback_error(status_code: int, detail: str) -> HTTPException:
    """HTTPException that also expires the login session cookie."""
    carrier = Response()
    _clear_session_cookie(carrier)
    return HTTPException(
        status_code=status_code,
        detail=detail,
        headers={"set-cookie": carrier.headers["set-cookie"]},
    )


async def _start(action: str):
    try:
        return await start_line_login(action)

    except MissingConfiguration as e:
        logger.error("LINE Login is not configured", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="LINE Login is temporarily unavailable",
        ) from None

    except SessionStoreUnavailable as e:
        logger.error("Login session store unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="LINE Login is temporarily unavailable",
        ) from None


@router.get("/auth/line/login")
async def line_login_redirect(action: Literal["login", "link"] = Query(default="login")):
    """
    Send the browser to LINE's authorization page.

    Raises:
        503: Channel configuration or session store unavailable
    """
    auth_url, session = await _start(action)

    logger.info(
        "Redirecting to LINE authorization",
        pending_action=action,
        state_preview=preview(session.state),
    )
    response = RedirectResponse(auth_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    _set_session_cookie(response, session.session_id)
    return response


@router.get("/auth/line/url", response_model=LineAuthURLResponse)
async def line_login_url(
    response: Response, action: Literal["login", "link"] = Query(default="login")
):
    """Return the authorization URL for clients that open the browser themselves."""
    auth_url, session = await _start(action)

    _set_session_cookie(response, session.session_id)
    return LineAuthURLResponse(auth_url=auth_url, state=session.state)


@router.post("/line-callback", response_model=LineCallbackResponse)
async def line_callback(body: LineCallbackRequest, request: Request, response: Response):
    """
    Complete LINE Login: validate state, exchange the code, check the ID token
    nonce, fetch the profile, resolve the local identity and mint a credential.

    The login session is consumed before anything else, so it is gone on every
    exit path, and the session cookie is cleared on every response.

    Raises:
        400: Missing code, token exchange or profile fetch failed
        401: State mismatch, expired or replayed session, nonce mismatch
        503: LINE Login not configured
        500: Unexpected error
    """
    session = await consume_login_session(request.cookies.get(SESSION_COOKIE_NAME))

    if not body.code:
        logger.warning("LINE callback without authorization code")
        raise _callback_error(status.HTTP_400_BAD_REQUEST, "Authorization code is required")

    if session and body.auth_action and body.auth_action != session.pending_action:
        logger.warning(
            "Client auth action differs from session",
            client_action=body.auth_action,
            session_action=session.pending_action,
        )

    try:
        logger.info(
            "Processing LINE callback",
            code_preview=preview(body.code, 12),
            state_preview=preview(body.state or ""),
        )

        result = await complete_line_login(body.code, body.state or "", session)

    except AuthSessionError as e:
        logger.warning("LINE callback rejected", error=str(e), error_code=e.error_code)
        raise _callback_error(status.HTTP_401_UNAUTHORIZED, str(e)) from None

    except NonceVerificationFailed as e:
        logger.warning("ID token nonce rejected", error=str(e), error_code=e.error_code)
        raise _callback_error(status.HTTP_401_UNAUTHORIZED, "ID token verification failed") from None

    except MissingConfiguration as e:
        logger.error("LINE Login is not configured", error=str(e))
        raise _callback_error(
            status.HTTP_503_SERVICE_UNAVAILABLE, "LINE Login is temporarily unavailable"
        ) from None

    except (TokenExchangeFailed, ProfileFetchFailed) as e:
        logger.error(
            "LINE callback failed upstream",
            error=str(e),
            error_code=e.error_code,
            response_data=e.response_data,
        )
        raise _callback_error(status.HTTP_400_BAD_REQUEST, str(e)) from None

    except Exception as e:
        logger.error(
            "Unexpected error during LINE callback",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise _callback_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred"
        ) from None

    _clear_session_cookie(response)

    logger.info(
        "LINE callback completed",
        result_kind=result.kind,
        uid_preview=preview(result.profile.subject_id),
        is_existing_user=result.resolution.is_existing_user,
    )
    return LineCallbackResponse.from_result(result)
