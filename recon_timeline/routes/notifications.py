"""
Notification API Routes
Preferences for every delivery channel and the browser notification feed.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.api.timeline_response import (
    MASKED_SECRET,
    BrowserNotificationsResponse,
    mask_preferences,
)
from recon_timeline.models.domain.settings_domain import NotificationPreferences
from recon_timeline.routes.dependencies import get_runtime
from recon_timeline.services.state.repository import StateStoreError
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(runtime: TimelineRuntime = Depends(get_runtime)):
    """Current notification preferences (SMTP password masked)."""
    return mask_preferences(runtime.preferences)


@router.put("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    preferences: NotificationPreferences, runtime: TimelineRuntime = Depends(get_runtime)
):
    """
    Replace notification preferences.

    Sending back the masked password keeps the stored one.
    """
    if preferences.email.smtp_password == MASKED_SECRET:
        preferences.email.smtp_password = runtime.preferences.email.smtp_password

    try:
        saved = await runtime.update_preferences(preferences)
    except StateStoreError as e:
        logger.error("Failed to save notification preferences", error=str(e), key=e.key)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save notification preferences",
        )
    return mask_preferences(saved)


@router.get("/browser", response_model=BrowserNotificationsResponse)
async def browser_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    after_id: int | None = Query(default=None, ge=0, description="Only entries newer than this id"),
    runtime: TimelineRuntime = Depends(get_runtime),
):
    """Recent browser notifications, newest first. Clients poll this."""
    items = runtime.dispatcher.hub.recent(limit=limit, after_id=after_id)
    return BrowserNotificationsResponse(notifications=[n.to_dict() for n in items])
