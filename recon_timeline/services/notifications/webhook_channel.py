"""
Webhook channel for timeline alerts.

Each endpoint's payload shape (Discord embed, Slack attachment or generic
JSON) is fixed when the preferences are validated. Deliveries to several
URLs run concurrently and are settled independently: one failing URL never
stops the others. Single attempt per URL, no retry.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from recon_timeline.config import settings
from recon_timeline.infrastructure.observability.logging import get_logger, log_delivery
from recon_timeline.models.domain.settings_domain import WebhookEndpoint, WebhookTarget
from recon_timeline.models.domain.timeline_domain import TimelineAlert
from recon_timeline.services.notifications.errors import NotificationDeliveryError
from recon_timeline.services.notifications.templates import (
    alert_body,
    alert_color,
    alert_title,
)

logger = get_logger(__name__)

WEBHOOK_USERNAME = "Recon Tracker"


@dataclass(slots=True)
class WebhookResult:
    url: str
    target: WebhookTarget
    success: bool
    status_code: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "target": self.target.value,
            "success": self.success,
            "status_code": self.status_code,
            "error": self.error,
        }


def _alert_fields(alert: TimelineAlert) -> list[tuple[str, str]]:
    return [
        ("Vehicle", alert.vehicle_info),
        ("VIN", alert.vin),
        ("Stage", alert.step.label),
        ("Days in stage", str(alert.current_days)),
        ("Target days", str(alert.target_days)),
    ]


def build_discord_payload(alert: TimelineAlert, escalation: bool = False) -> dict:
    return {
        "username": WEBHOOK_USERNAME,
        "embeds": [
            {
                "title": alert_title(alert, escalation),
                "description": alert.message,
                "color": int(alert_color(alert).lstrip("#"), 16),
                "fields": [
                    {"name": name, "value": value, "inline": True}
                    for name, value in _alert_fields(alert)
                ],
                "timestamp": alert.timestamp.isoformat(),
            }
        ],
    }


def build_slack_payload(alert: TimelineAlert, escalation: bool = False) -> dict:
    return {
        "text": alert_title(alert, escalation),
        "attachments": [
            {
                "color": alert_color(alert),
                "title": alert_title(alert, escalation),
                "text": alert.message,
                "fields": [
                    {"title": name, "value": value, "short": True}
                    for name, value in _alert_fields(alert)
                ],
                "ts": int(alert.timestamp.timestamp()),
            }
        ],
    }


def build_generic_payload(alert: TimelineAlert, escalation: bool = False) -> dict:
    return {
        "event": "timeline.escalation" if escalation else "timeline.alert",
        "title": alert_title(alert, escalation),
        "summary": alert_body(alert),
        "escalation": escalation,
        "alert": alert.to_dict(),
    }


PAYLOAD_BUILDERS = {
    WebhookTarget.DISCORD: build_discord_payload,
    WebhookTarget.SLACK: build_slack_payload,
    WebhookTarget.GENERIC: build_generic_payload,
}


def build_payload(target: WebhookTarget, alert: TimelineAlert, escalation: bool = False) -> dict:
    return PAYLOAD_BUILDERS[target](alert, escalation)


class WebhookChannel:
    name = "webhook"

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(settings.WEBHOOK_TIMEOUT_SECONDS))
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(
        self, endpoint: WebhookEndpoint, alert: TimelineAlert, escalation: bool
    ) -> WebhookResult:
        payload = build_payload(endpoint.target, alert, escalation)
        try:
            response = await self._get_client().post(endpoint.url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(
                f"Webhook request failed: {e}", channel=self.name, target=endpoint.url
            ) from e

        if not response.is_success:
            raise NotificationDeliveryError(
                f"Webhook returned HTTP {response.status_code}",
                channel=self.name,
                target=endpoint.url,
            )
        return WebhookResult(
            url=endpoint.url,
            target=endpoint.target,
            success=True,
            status_code=response.status_code,
        )

    async def send(
        self,
        alert: TimelineAlert,
        endpoints: Sequence[WebhookEndpoint],
        escalation: bool = False,
    ) -> list[WebhookResult]:
        """POST the alert to every endpoint and settle all results."""
        if not endpoints:
            return []

        outcomes = await asyncio.gather(
            *(self._post(endpoint, alert, escalation) for endpoint in endpoints),
            return_exceptions=True,
        )

        results: list[WebhookResult] = []
        for endpoint, outcome in zip(endpoints, outcomes):
            if isinstance(outcome, WebhookResult):
                result = outcome
            elif isinstance(outcome, Exception):
                result = WebhookResult(
                    url=endpoint.url, target=endpoint.target, success=False, error=str(outcome)
                )
            else:
                # CancelledError and friends must not be swallowed
                raise outcome
            log_delivery(
                self.name,
                result.success,
                alert.id,
                error=result.error,
                target=endpoint.target.value,
                escalation=escalation,
            )
            results.append(result)

        return results
