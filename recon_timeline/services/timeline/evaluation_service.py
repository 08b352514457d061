"""
Timeline runtime: wires state, alert store and notification dispatcher.

One TimelineRuntime is built at startup (or injected in tests) and handed
to the routes and jobs. Every mutation persists through the repository.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from recon_timeline.config import Settings
from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.settings_domain import NotificationPreferences, TimelineGoals
from recon_timeline.models.domain.timeline_domain import (
    TRACKED_STAGES,
    AlertKey,
    EvaluationSummary,
    TimelineAlert,
    VehicleRecord,
    VehicleStats,
)
from recon_timeline.services.infrastructure.redis_client import FastRedisClient
from recon_timeline.services.notifications.browser_channel import BrowserNotificationHub
from recon_timeline.services.notifications.dispatcher import NotificationDispatcher
from recon_timeline.services.notifications.email_channel import EmailChannel
from recon_timeline.services.notifications.webhook_channel import WebhookChannel
from recon_timeline.services.state.file_store import FileKeyValueStore
from recon_timeline.services.state.repository import StateRepository, TimelineState
from recon_timeline.services.timeline.alert_generator import evaluate_stage, is_stage_active
from recon_timeline.services.timeline.alert_store import AlertStore
from recon_timeline.services.timeline.vehicle_stats import calculate_stats

logger = get_logger(__name__)


class TimelineRuntime:
    def __init__(
        self,
        repository: StateRepository,
        state: TimelineState | None = None,
        hub: BrowserNotificationHub | None = None,
        email_channel: EmailChannel | None = None,
        webhook_channel: WebhookChannel | None = None,
        auto_clear_completed: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.state = state or TimelineState()
        self.auto_clear_completed = auto_clear_completed
        self._clock = clock or (lambda: datetime.now(UTC))

        self.dispatcher = NotificationDispatcher(
            preferences_provider=lambda: self.state.preferences,
            hub=hub,
            email_channel=email_channel,
            webhook_channel=webhook_channel,
            clock=self._clock,
        )
        self.store = AlertStore(on_alert_added=self.dispatcher.dispatch_in_background, clock=self._clock)
        self.store.load(self.state.alerts)
        self.dispatcher.set_alert_check(self.store.is_open)

    @classmethod
    async def create(cls, repository: StateRepository, **kwargs) -> "TimelineRuntime":
        state = await repository.load()
        return cls(repository, state=state, **kwargs)

    @property
    def goals(self) -> TimelineGoals:
        return self.state.goals

    @property
    def preferences(self) -> NotificationPreferences:
        return self.state.preferences

    async def _persist_alerts(self) -> None:
        self.state.alerts = self.store.alerts
        await self.repository.save_alerts(self.state.alerts)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(
        self, vehicles: Iterable[VehicleRecord], now: datetime | None = None
    ) -> EvaluationSummary:
        """
        Run one evaluation pass.

        Every due alert is (re)added, which replaces the previous record for
        its slot and triggers a fresh delivery. Stages that are no longer
        active lose their alert when auto-clear is on; active stages that
        dropped below the warning threshold keep theirs until dismissed.
        """
        now = now or self._clock()
        summary = EvaluationSummary()

        for vehicle in vehicles:
            summary.vehicles_evaluated += 1
            for stage in TRACKED_STAGES:
                draft = evaluate_stage(vehicle, stage, self.state.goals, now)
                if draft is not None:
                    summary.alerts_raised.append(self.store.add_alert(draft))
                    continue

                if self.auto_clear_completed and not is_stage_active(vehicle, stage):
                    key = AlertKey(vehicle.id, stage)
                    resolved = self.store.resolve(key)
                    if resolved is not None:
                        self.dispatcher.cancel_escalation(resolved)
                        summary.alerts_cleared.append(key)

        await self._persist_alerts()
        logger.info("Timeline evaluation complete", **summary.to_dict())
        return summary

    def stats(self, vehicles: Iterable[VehicleRecord], now: datetime | None = None) -> VehicleStats:
        return calculate_stats(vehicles, self.state.goals, now or self._clock())

    # ------------------------------------------------------------------
    # Alert actions
    # ------------------------------------------------------------------

    async def acknowledge(self, alert_id: str) -> TimelineAlert:
        alert = self.store.acknowledge_alert(alert_id)
        self.dispatcher.cancel_escalation(alert)
        await self._persist_alerts()
        return alert

    async def dismiss(self, alert_id: str) -> TimelineAlert:
        alert = self.store.dismiss_alert(alert_id)
        self.dispatcher.cancel_escalation(alert)
        await self._persist_alerts()
        return alert

    async def clear_all(self) -> int:
        cleared = self.store.clear_all_alerts()
        for alert in cleared:
            self.dispatcher.cancel_escalation(alert)
        await self._persist_alerts()
        return len(cleared)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def update_goals(self, goals: TimelineGoals) -> TimelineGoals:
        self.state.goals = goals
        await self.repository.save_goals(goals)
        logger.info("Timeline goals updated", **{s: g["target"] for s, g in goals.model_dump().items()})
        return goals

    async def update_preferences(self, preferences: NotificationPreferences) -> NotificationPreferences:
        self.state.preferences = preferences
        await self.repository.save_preferences(preferences)
        logger.info(
            "Notification preferences updated",
            browser=preferences.browser.enabled,
            email=preferences.email.enabled,
            webhooks=len(preferences.webhooks.endpoints) if preferences.webhooks.enabled else 0,
            escalation=preferences.escalation.enabled,
        )
        return preferences

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        ping = getattr(self.repository.store, "ping", None)
        if ping is None:
            return True
        return bool(await ping())

    async def shutdown(self) -> None:
        await self.dispatcher.shutdown()
        close = getattr(self.repository.store, "close", None)
        if close is not None:
            await close()


async def build_runtime(settings: Settings) -> TimelineRuntime:
    """Build the runtime with the state backend named in settings."""
    backend = settings.state_backend()
    if backend == "redis":
        store = FastRedisClient(settings.REDIS_URL)
        await store.initialize()
    else:
        store = FileKeyValueStore(settings.STATE_FILE_PATH)

    repository = StateRepository(
        store, default_preferences=NotificationPreferences.from_settings(settings)
    )
    runtime = await TimelineRuntime.create(
        repository, auto_clear_completed=settings.AUTO_CLEAR_COMPLETED_STAGES
    )
    logger.info("Timeline runtime ready", state_backend=backend, alerts=len(runtime.store))
    return runtime
