# recon_timeline/routes/health.py
"""
Health check endpoints with state backend monitoring.
"""

import time

from fastapi import APIRouter, Depends, Response, status

from recon_timeline.config import settings
from recon_timeline.routes.dependencies import get_runtime
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "recon-timeline"}


@router.get("/readyz")
async def readyz(response: Response, runtime: TimelineRuntime = Depends(get_runtime)):
    """
    Readiness check covering the state backend and configuration.
    Responds 503 when the state backend is unreachable.
    """
    checks = {}
    overall_ok = True

    # 1) State backend
    t0 = time.time()
    try:
        store_ok = await runtime.ping()
        checks["state_store"] = {
            "ok": store_ok,
            "backend": settings.state_backend(),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and store_ok
    except Exception as e:
        checks["state_store"] = {
            "ok": False,
            "backend": settings.state_backend(),
            "error": f"{type(e).__name__}: {e}",
        }
        overall_ok = False

    # 2) Configuration (warnings only, the service runs without them)
    config_issues = []
    if not settings.RECON_WEBHOOK_SECRET:
        config_issues.append("RECON_WEBHOOK_SECRET not set")
    if not settings.VEHICLE_FEED_URL:
        config_issues.append("VEHICLE_FEED_URL not set")
    if runtime.preferences.email.enabled and not runtime.preferences.email.is_configured:
        config_issues.append("Email notifications enabled without recipient or SMTP host")

    checks["configuration"] = {
        "ok": True,
        "issues": config_issues or None,
        "environment": settings.environment,
    }

    checks["alerts"] = {"ok": True, **runtime.store.counts()}
    checks["escalations"] = {"ok": True, "pending": len(runtime.dispatcher.escalations.pending_keys)}

    if not overall_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
