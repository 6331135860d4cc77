"""
LINE Messaging webhook intake.

The signature is checked against the untouched request bytes before the body
is parsed. Once it passes, the endpoint always answers 200 so LINE does not
redeliver; handler failures are logged, never surfaced.
"""

import json

from fastapi import APIRouter, HTTPException, Request, status

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.security.signature import SignatureInvalid, verify_signature
from app.services.webhook_service import route_webhook_events

logger = get_logger(__name__)

router = APIRouter(tags=["webhook"])

SIGNATURE_HEADERS = ("x-line-signature", "x-provider-signature")


def _signature_from(request: Request) -> str | None:
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


@router.post("/webhook")
async def line_webhook(request: Request):
    raw = await request.body()

    try:
        verify_signature(raw, _signature_from(request), settings.webhook_secret())
    except SignatureInvalid as e:
        logger.warning("Webhook signature rejected", reason=str(e))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from None

    try:
        payload = json.loads(raw) if raw else {}
    except ValueError:
        logger.warning("Webhook body is not valid JSON", body_length=len(raw))
        return {"status": "ignored"}

    events = payload.get("events") if isinstance(payload, dict) else None
    if not events:
        # LINE's endpoint verification sends an empty event list
        return {"status": "ok"}

    try:
        summary = await route_webhook_events(events)
    except Exception as e:
        logger.error("Webhook routing failed", error=str(e), error_type=type(e).__name__)
        return {"status": "error"}

    return {"status": "ok", **summary}
