"""
Inbound webhook from the vehicle-management system.

Requests are signed with HMAC-SHA256 over "{timestamp}.{raw body}" using
RECON_WEBHOOK_SECRET. Vehicle updates trigger an evaluation of that
vehicle; other events are logged and acknowledged.
"""

import hashlib
import hmac
import time

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from recon_timeline.config import settings
from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.api.timeline_request import ReconWebhookEvent, VehicleInput
from recon_timeline.models.api.timeline_response import ReconWebhookResponse
from recon_timeline.routes.dependencies import get_runtime
from recon_timeline.services.state.repository import StateStoreError
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "x-recon-signature"
TIMESTAMP_HEADER = "x-recon-timestamp"
SIGNATURE_PREFIX = "sha256="
MAX_CLOCK_SKEW_SECONDS = 300

EVALUATED_EVENTS = {"vehicle.updated", "vehicle.completed"}
LOGGED_EVENTS = {"vehicle.overdue", "team.assigned", "daily.report"}


def sign_payload(secret: str, timestamp: str, raw: bytes) -> str:
    """Signature header value for a payload."""
    message = timestamp.encode() + b"." + raw
    digest = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_recon_signature(
    raw: bytes, signature: str | None, timestamp: str | None, now: float | None = None
) -> None:
    secret = settings.RECON_WEBHOOK_SECRET
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Webhook secret not configured"
        )
    if not signature or not timestamp:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")

    try:
        sent_at = int(timestamp)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid timestamp")

    if abs((now or time.time()) - sent_at) > MAX_CLOCK_SKEW_SECONDS:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Stale signature")

    expected = sign_payload(secret, timestamp, raw)
    if not hmac.compare_digest(expected, signature):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")


def _unprocessable(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=e.errors(include_url=False, include_context=False),
    )


@router.post("/recon", response_model=ReconWebhookResponse)
async def recon_webhook(request: Request, runtime: TimelineRuntime = Depends(get_runtime)):
    raw = await request.body()
    verify_recon_signature(
        raw, request.headers.get(SIGNATURE_HEADER), request.headers.get(TIMESTAMP_HEADER)
    )

    try:
        event = ReconWebhookEvent.model_validate_json(raw)
    except ValidationError as e:
        raise _unprocessable(e)

    if event.event not in EVALUATED_EVENTS:
        if event.event in LOGGED_EVENTS:
            logger.info("Recon webhook event received", webhook_event=event.event)
        else:
            logger.warning("Unhandled recon webhook event", webhook_event=event.event)
        return ReconWebhookResponse(event=event.event)

    vehicle_data = event.data.get("vehicle", event.data)
    try:
        vehicle = VehicleInput.model_validate(vehicle_data).to_domain()
    except ValidationError as e:
        raise _unprocessable(e)

    try:
        summary = await runtime.evaluate([vehicle])
    except StateStoreError as e:
        logger.error("Recon webhook evaluation failed", vehicle_id=vehicle.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to evaluate vehicle"
        )

    logger.info(
        "Recon webhook vehicle evaluated",
        webhook_event=event.event,
        vehicle_id=vehicle.id,
        alerts_raised=len(summary.alerts_raised),
    )
    return ReconWebhookResponse(
        event=event.event, evaluated=True, alerts_raised=len(summary.alerts_raised)
    )
