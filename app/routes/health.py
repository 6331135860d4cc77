# app/routes/health.py
"""
Health check endpoints: liveness, and readiness against Redis and configuration.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "line-bridge"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check: Redis reachability plus the configuration each flow needs.
    """
    checks = {}
    overall_ok = True

    # 1) Redis health check
    t0 = time.time()
    try:
        redis_ok = await fast_redis.ping()
        checks["redis"] = {
            "ok": bool(redis_ok),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and bool(redis_ok)
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Configuration checks
    config_issues = []

    if not settings.LINE_CHANNEL_ID or not settings.LINE_CHANNEL_SECRET:
        config_issues.append("LINE Login channel not configured")

    if not settings.LINE_MESSAGING_CHANNEL_ACCESS_TOKEN:
        config_issues.append("LINE_MESSAGING_CHANNEL_ACCESS_TOKEN not set")

    if not settings.webhook_secret():
        config_issues.append("LINE_MESSAGING_CHANNEL_SECRET not set")

    if not settings.SESSION_TOKEN_SECRET:
        config_issues.append("SESSION_TOKEN_SECRET not set")

    config_ok = not config_issues
    checks["configuration"] = {
        "ok": config_ok,
        "issues": config_issues if config_issues else None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
