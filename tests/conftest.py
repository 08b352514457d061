from datetime import UTC, datetime, timedelta

import httpx
import pytest

from recon_timeline.models.domain.settings_domain import NotificationPreferences
from recon_timeline.models.domain.timeline_domain import AlertType, Stage, TimelineAlert, VehicleRecord
from recon_timeline.services.notifications.browser_channel import BrowserNotificationHub
from recon_timeline.services.notifications.email_channel import EmailChannel, EmailMessage
from recon_timeline.services.notifications.errors import NotificationDeliveryError
from recon_timeline.services.notifications.webhook_channel import WebhookChannel
from recon_timeline.services.state.repository import StateRepository, TimelineState
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.healthy = True

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def ping(self) -> bool:
        return self.healthy


class FakeEmailSender:
    def __init__(self, fail_for: set[str] | None = None):
        self.sent: list[EmailMessage] = []
        self.fail_for = fail_for or set()

    async def send(self, message: EmailMessage, prefs) -> None:
        if message.recipient in self.fail_for or "*" in self.fail_for:
            raise NotificationDeliveryError(
                "SMTP send failed: connection refused", channel="email", target=message.recipient
            )
        self.sent.append(message)


class WebhookRecorder:
    """MockTransport handler that records requests and fails chosen hosts."""

    def __init__(self, failing_hosts: set[str] | None = None):
        self.requests: list[httpx.Request] = []
        self.failing_hosts = failing_hosts or set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.failing_hosts:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(204)

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


def make_vehicle(
    vin: str = "1HGCM82633A004352",
    shop_days: float | None = None,
    now: datetime = NOW,
    **overrides,
) -> VehicleRecord:
    """Vehicle whose shop stage started shop_days before now."""
    fields = {
        "id": overrides.pop("id", vin),
        "vin": vin,
        "make": "Honda",
        "model": "Accord",
        "year": 2021,
        "stock": "A1234",
    }
    if shop_days is not None:
        fields["inventory_date"] = now - timedelta(days=shop_days)
    fields.update(overrides)
    return VehicleRecord(**fields)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def webhook_recorder():
    return WebhookRecorder()


@pytest.fixture
def make_runtime(fake_redis, email_sender, webhook_recorder):
    """Build a TimelineRuntime on fakes with a fixed clock."""

    def _make(preferences: NotificationPreferences | None = None, **kwargs) -> TimelineRuntime:
        state = TimelineState(preferences=preferences or NotificationPreferences())
        clock = kwargs.pop("clock", lambda: NOW)
        client = httpx.AsyncClient(transport=httpx.MockTransport(webhook_recorder))
        return TimelineRuntime(
            StateRepository(fake_redis),
            state=state,
            hub=BrowserNotificationHub(),
            email_channel=EmailChannel(sender=email_sender),
            webhook_channel=WebhookChannel(client=client),
            clock=clock,
            **kwargs,
        )

    return _make


def make_alert(
    vehicle_id: str = "VIN1",
    step: Stage = Stage.SHOP,
    alert_type: AlertType = AlertType.OVERDUE,
    current_days: int = 6,
    target_days: int = 5,
    alert_id: str = "alert-1",
) -> TimelineAlert:
    return TimelineAlert(
        id=alert_id,
        vehicle_id=vehicle_id,
        vehicle_info="2021 Honda Accord",
        vin=vehicle_id,
        step=step,
        type=alert_type,
        current_days=current_days,
        target_days=target_days,
        message=f"{step.label} stage needs attention",
        timestamp=NOW,
    )
