"""
Browser notification channel.

The server cannot raise native notifications itself, so alerts are
published to an in-process hub that browser clients poll. Each entry
mirrors the Notification API options ({title, body, tag,
requireInteraction}) plus an optional tone pattern for the client to play.
"""

import itertools
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.settings_domain import BrowserPreferences
from recon_timeline.models.domain.timeline_domain import TimelineAlert
from recon_timeline.services.notifications.templates import alert_body, alert_title

logger = get_logger(__name__)

MAX_RECENT_NOTIFICATIONS = 200


@dataclass(frozen=True, slots=True)
class Tone:
    frequency_hz: int
    duration_ms: int
    gap_ms: int = 0


# Single beep for warnings, rapid triple beep for critical alerts
WARNING_TONE: tuple[Tone, ...] = (Tone(frequency_hz=800, duration_ms=200),)
CRITICAL_TONE: tuple[Tone, ...] = (
    Tone(frequency_hz=1000, duration_ms=150, gap_ms=100),
    Tone(frequency_hz=1000, duration_ms=150, gap_ms=100),
    Tone(frequency_hz=1000, duration_ms=150),
)


@dataclass(slots=True)
class BrowserNotification:
    id: int
    title: str
    body: str
    tag: str
    require_interaction: bool
    alert_id: str | None = None
    tone: tuple[Tone, ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "tag": self.tag,
            "requireInteraction": self.require_interaction,
            "alert_id": self.alert_id,
            "tone": [
                {"frequency_hz": t.frequency_hz, "duration_ms": t.duration_ms, "gap_ms": t.gap_ms}
                for t in self.tone
            ],
            "created_at": self.created_at.isoformat(),
        }


class BrowserNotificationHub:
    """Bounded buffer of notifications waiting for browser clients."""

    def __init__(self, max_items: int = MAX_RECENT_NOTIFICATIONS):
        self._items: deque[BrowserNotification] = deque(maxlen=max_items)
        self._ids = itertools.count(1)

    def publish(
        self,
        title: str,
        body: str,
        tag: str,
        require_interaction: bool = False,
        alert_id: str | None = None,
        tone: tuple[Tone, ...] = (),
    ) -> BrowserNotification:
        notification = BrowserNotification(
            id=next(self._ids),
            title=title,
            body=body,
            tag=tag,
            require_interaction=require_interaction,
            alert_id=alert_id,
            tone=tone,
        )
        self._items.append(notification)
        logger.debug("Browser notification published", tag=tag, notification_id=notification.id)
        return notification

    def recent(self, limit: int = 50, after_id: int | None = None) -> list[BrowserNotification]:
        """Newest first; after_id returns only entries newer than that id."""
        items = [n for n in self._items if after_id is None or n.id > after_id]
        return list(reversed(items))[:limit]


def alert_tag(alert: TimelineAlert) -> str:
    return f"timeline-{alert.vehicle_id}-{alert.step.value}"


def tone_for(alert: TimelineAlert) -> tuple[Tone, ...]:
    return CRITICAL_TONE if alert.is_critical else WARNING_TONE


def should_notify(prefs: BrowserPreferences, alert: TimelineAlert) -> bool:
    if not prefs.enabled:
        return False
    return alert.is_critical or not prefs.overdue_only


class BrowserChannel:
    name = "browser"

    def __init__(self, hub: BrowserNotificationHub):
        self.hub = hub

    async def send(
        self,
        alert: TimelineAlert,
        prefs: BrowserPreferences,
        escalation: bool = False,
        muted: bool = False,
    ) -> BrowserNotification:
        tone = tone_for(alert) if prefs.sound and not muted else ()
        tag = alert_tag(alert)
        if escalation:
            tag = f"{tag}-escalation"
        return self.hub.publish(
            title=alert_title(alert, escalation),
            body=alert_body(alert),
            tag=tag,
            require_interaction=alert.is_critical,
            alert_id=alert.id,
            tone=tone,
        )

    def publish_email_failure(self, alert: TimelineAlert, error: str) -> BrowserNotification:
        """Fallback shown when an alert email could not be delivered."""
        return self.hub.publish(
            title=f"Email failed: {alert.vehicle_info}",
            body=f"{alert_body(alert)} Email delivery failed: {error}",
            tag=f"{alert_tag(alert)}-email-failed",
            require_interaction=False,
            alert_id=alert.id,
        )
