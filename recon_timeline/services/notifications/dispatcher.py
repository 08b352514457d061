"""
Notification dispatcher for timeline alerts.

Fans one alert out to the browser, email and webhook channels
concurrently. Channels are independent: every failure is caught, logged
and recorded in the DispatchReport, and nothing propagates to the caller.
Critical alerts also arm a delayed escalation to manager contacts.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from recon_timeline.infrastructure.observability.logging import get_logger, log_delivery
from recon_timeline.models.domain.settings_domain import NotificationPreferences
from recon_timeline.models.domain.timeline_domain import TimelineAlert
from recon_timeline.services.notifications.browser_channel import (
    BrowserChannel,
    BrowserNotificationHub,
    should_notify,
)
from recon_timeline.services.notifications.email_channel import EmailChannel
from recon_timeline.services.notifications.escalation import EscalationScheduler
from recon_timeline.services.notifications.webhook_channel import WebhookChannel

logger = get_logger(__name__)

PreferencesProvider = Callable[[], NotificationPreferences]
AlertOpenCheck = Callable[[TimelineAlert], bool]


@dataclass(slots=True)
class ChannelResult:
    channel: str
    success: bool = False
    skipped: str | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def skip(cls, channel: str, reason: str) -> "ChannelResult":
        return cls(channel=channel, skipped=reason)

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "success": self.success,
            "skipped": self.skipped,
            "error": self.error,
            "details": self.details,
        }


@dataclass(slots=True)
class DispatchReport:
    alert_id: str
    escalation: bool = False
    results: list[ChannelResult] = field(default_factory=list)
    escalation_scheduled: bool = False

    def result_for(self, channel: str) -> ChannelResult | None:
        for result in self.results:
            if result.channel == channel:
                return result
        return None

    @property
    def delivered_channels(self) -> list[str]:
        return [r.channel for r in self.results if r.success]

    def to_dict(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "escalation": self.escalation,
            "escalation_scheduled": self.escalation_scheduled,
            "results": [r.to_dict() for r in self.results],
        }


class NotificationDispatcher:
    def __init__(
        self,
        preferences_provider: PreferencesProvider,
        hub: BrowserNotificationHub | None = None,
        email_channel: EmailChannel | None = None,
        webhook_channel: WebhookChannel | None = None,
        escalations: EscalationScheduler | None = None,
        alert_is_open: AlertOpenCheck | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._preferences = preferences_provider
        self.hub = hub or BrowserNotificationHub()
        self.browser = BrowserChannel(self.hub)
        self.email = email_channel or EmailChannel()
        self.webhook = webhook_channel or WebhookChannel()
        self.escalations = escalations or EscalationScheduler()
        self._alert_is_open = alert_is_open
        self._clock = clock or (lambda: datetime.now(UTC))
        self._pending: set[asyncio.Task] = set()

    def set_alert_check(self, check: AlertOpenCheck | None) -> None:
        self._alert_is_open = check

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def dispatch_in_background(self, alert: TimelineAlert) -> asyncio.Task | None:
        """Fire-and-forget dispatch; failures end up in the logs only."""
        try:
            task = asyncio.get_running_loop().create_task(self.dispatch(alert))
        except RuntimeError:
            logger.warning("No running event loop, alert not dispatched", alert_id=alert.id)
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def dispatch(self, alert: TimelineAlert) -> DispatchReport:
        """Deliver an alert on every enabled channel and settle all results."""
        prefs = self._preferences()
        report = DispatchReport(alert_id=alert.id)

        if not alert.is_critical:
            self.escalations.cancel(alert.key)

        quiet = prefs.quiet_hours.contains(self._clock())
        if quiet and not alert.is_critical:
            report.results = [
                ChannelResult.skip(channel, "quiet_hours")
                for channel in (self.browser.name, self.email.name, self.webhook.name)
            ]
            logger.info("Alert held back during quiet hours", alert_id=alert.id)
            return report

        report.results = await self._settle(
            [
                (self.browser.name, self._deliver_browser(alert, prefs, muted=quiet)),
                (self.email.name, self._deliver_email(alert, prefs)),
                (self.webhook.name, self._deliver_webhooks(alert, prefs)),
            ]
        )

        if prefs.escalation.enabled and alert.is_critical:
            report.escalation_scheduled = self._schedule_escalation(alert, prefs)

        logger.info(
            "Alert dispatched",
            alert_id=alert.id,
            delivered=report.delivered_channels,
            escalation_scheduled=report.escalation_scheduled,
        )
        return report

    async def escalate(self, alert: TimelineAlert) -> DispatchReport:
        """Send the ESCALATION follow-up to manager contacts."""
        report = DispatchReport(alert_id=alert.id, escalation=True)

        if self._alert_is_open is not None and not self._alert_is_open(alert):
            logger.info("Escalation skipped, alert no longer open", alert_id=alert.id)
            report.results = [ChannelResult.skip("escalation", "alert_closed")]
            return report

        prefs = self._preferences()
        report.results = await self._settle(
            [
                (self.browser.name, self._deliver_browser(alert, prefs, escalation=True)),
                (self.email.name, self._deliver_manager_emails(alert, prefs)),
                (self.webhook.name, self._deliver_webhooks(alert, prefs, escalation=True)),
            ]
        )
        logger.warning(
            "Alert escalated to managers",
            alert_id=alert.id,
            vehicle_id=alert.vehicle_id,
            step=alert.step.value,
            delivered=report.delivered_channels,
        )
        return report

    def cancel_escalation(self, alert: TimelineAlert) -> bool:
        return self.escalations.cancel(alert.key)

    async def drain(self) -> None:
        """Wait for every background dispatch started so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.drain()
        cancelled = self.escalations.cancel_all()
        await self.webhook.close()
        logger.info("Notification dispatcher stopped", escalations_cancelled=cancelled)

    # ------------------------------------------------------------------
    # Channel delivery
    # ------------------------------------------------------------------

    async def _settle(
        self, jobs: list[tuple[str, Awaitable[ChannelResult]]]
    ) -> list[ChannelResult]:
        outcomes = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
        results = []
        for (channel, _), outcome in zip(jobs, outcomes):
            if isinstance(outcome, ChannelResult):
                results.append(outcome)
            elif isinstance(outcome, Exception):
                logger.error("Channel delivery crashed", channel=channel, error=str(outcome))
                results.append(ChannelResult(channel=channel, error=str(outcome)))
            else:
                raise outcome
        return results

    async def _deliver_browser(
        self,
        alert: TimelineAlert,
        prefs: NotificationPreferences,
        escalation: bool = False,
        muted: bool = False,
    ) -> ChannelResult:
        channel = self.browser.name
        if escalation:
            if not prefs.browser.enabled:
                return ChannelResult.skip(channel, "disabled")
        elif not should_notify(prefs.browser, alert):
            return ChannelResult.skip(channel, "disabled")

        notification = await self.browser.send(
            alert, prefs.browser, escalation=escalation, muted=muted
        )
        log_delivery(channel, True, alert.id, escalation=escalation)
        return ChannelResult(
            channel=channel,
            success=True,
            details={"notification_id": notification.id, "tag": notification.tag},
        )

    async def _deliver_email(
        self, alert: TimelineAlert, prefs: NotificationPreferences
    ) -> ChannelResult:
        channel = self.email.name
        if not prefs.email.enabled:
            return ChannelResult.skip(channel, "disabled")
        if not prefs.email.is_configured:
            return ChannelResult.skip(channel, "not_configured")

        try:
            message = await self.email.send(alert, prefs.email)
        except Exception as e:
            log_delivery(channel, False, alert.id, error=str(e))
            self.browser.publish_email_failure(alert, str(e))
            return ChannelResult(channel=channel, error=str(e), details={"fallback": "browser"})

        log_delivery(channel, True, alert.id, recipient=message.recipient)
        return ChannelResult(channel=channel, success=True, details={"recipient": message.recipient})

    async def _deliver_manager_emails(
        self, alert: TimelineAlert, prefs: NotificationPreferences
    ) -> ChannelResult:
        channel = self.email.name
        recipients = prefs.escalation.manager_emails
        if not recipients:
            return ChannelResult.skip(channel, "no_recipients")
        if not prefs.email.smtp_host:
            return ChannelResult.skip(channel, "not_configured")

        outcomes = await asyncio.gather(
            *(
                self.email.send(alert, prefs.email, recipient=recipient, escalation=True)
                for recipient in recipients
            ),
            return_exceptions=True,
        )
        failed = {}
        for recipient, outcome in zip(recipients, outcomes):
            if isinstance(outcome, Exception):
                failed[recipient] = str(outcome)
                log_delivery(channel, False, alert.id, error=str(outcome), escalation=True)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                log_delivery(channel, True, alert.id, recipient=recipient, escalation=True)

        return ChannelResult(
            channel=channel,
            success=not failed,
            error="; ".join(f"{r}: {e}" for r, e in failed.items()) or None,
            details={"recipients": len(recipients), "failed": sorted(failed)},
        )

    async def _deliver_webhooks(
        self, alert: TimelineAlert, prefs: NotificationPreferences, escalation: bool = False
    ) -> ChannelResult:
        channel = self.webhook.name
        if escalation:
            endpoints = prefs.escalation.manager_webhooks
        else:
            if not prefs.webhooks.enabled:
                return ChannelResult.skip(channel, "disabled")
            endpoints = prefs.webhooks.endpoints
        if not endpoints:
            return ChannelResult.skip(channel, "not_configured")

        results = await self.webhook.send(alert, endpoints, escalation=escalation)
        failures = [r for r in results if not r.success]
        return ChannelResult(
            channel=channel,
            success=not failures,
            error="; ".join(f"{r.url}: {r.error}" for r in failures) or None,
            details={"results": [r.to_dict() for r in results]},
        )

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def _schedule_escalation(self, alert: TimelineAlert, prefs: NotificationPreferences) -> bool:
        escalation = prefs.escalation
        if not escalation.manager_emails and not escalation.manager_webhooks:
            logger.debug("Escalation enabled without manager contacts", alert_id=alert.id)

        async def _fire() -> None:
            await self.escalate(alert)

        # A re-raised slot keeps the deadline from when it first went critical.
        self.escalations.schedule(alert.key, escalation.delay_seconds, _fire, keep_deadline=True)
        return True
