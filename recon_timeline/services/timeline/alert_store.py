"""
In-memory alert collection with replace-on-add semantics.

Holds at most one alert per (vehicle, stage). Adding an alert for an
occupied slot replaces the previous record, then hands the new alert to
the registered notification hook. Persistence is the caller's job (see
StateRepository); this class only keeps the collection consistent.
"""

import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.timeline_domain import (
    AlertDraft,
    AlertKey,
    AlertType,
    Stage,
    TimelineAlert,
)

logger = get_logger(__name__)

AlertHook = Callable[[TimelineAlert], None]


class AlertNotFoundError(Exception):
    """Raised when an alert id is not in the store."""

    def __init__(self, alert_id: str):
        super().__init__(f"Alert {alert_id} not found")
        self.alert_id = alert_id


class AlertStore:
    def __init__(
        self,
        on_alert_added: AlertHook | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._alerts: list[TimelineAlert] = []
        self._on_alert_added = on_alert_added
        self._clock = clock or (lambda: datetime.now(UTC))
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def alerts(self) -> list[TimelineAlert]:
        return list(self._alerts)

    def __len__(self) -> int:
        return len(self._alerts)

    def get(self, alert_id: str) -> TimelineAlert | None:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        return None

    def find(self, key: AlertKey) -> TimelineAlert | None:
        for alert in self._alerts:
            if alert.key == key:
                return alert
        return None

    def is_open(self, alert: TimelineAlert) -> bool:
        """True while this exact alert is stored and unacknowledged."""
        current = self.get(alert.id)
        return current is not None and not current.acknowledged

    def filter(
        self,
        step: Stage | None = None,
        alert_type: AlertType | None = None,
        acknowledged: bool | None = None,
        vehicle_id: str | None = None,
    ) -> list[TimelineAlert]:
        results = self._alerts
        if step is not None:
            results = [a for a in results if a.step == step]
        if alert_type is not None:
            results = [a for a in results if a.type == alert_type]
        if acknowledged is not None:
            results = [a for a in results if a.acknowledged == acknowledged]
        if vehicle_id is not None:
            results = [a for a in results if a.vehicle_id == vehicle_id]
        return list(results)

    def counts(self) -> dict[str, int]:
        return {
            "total": len(self._alerts),
            "overdue": sum(1 for a in self._alerts if a.type == AlertType.OVERDUE),
            "warning": sum(1 for a in self._alerts if a.type == AlertType.WARNING),
            "unacknowledged": sum(1 for a in self._alerts if not a.acknowledged),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_alert(self, draft: AlertDraft) -> TimelineAlert:
        """
        Store a new alert, replacing any alert for the same vehicle and stage.

        The notification hook runs after the alert is stored. Hook failures
        are logged and never undo the add.
        """
        alert = TimelineAlert.from_draft(draft, alert_id=self._id_factory(), timestamp=self._clock())

        replaced = self._remove_key(alert.key)
        self._alerts.append(alert)

        logger.info(
            "Timeline alert stored",
            alert_id=alert.id,
            vehicle_id=alert.vehicle_id,
            step=alert.step.value,
            alert_type=alert.type.value,
            current_days=alert.current_days,
            target_days=alert.target_days,
            replaced=replaced is not None,
        )

        if self._on_alert_added is not None:
            try:
                self._on_alert_added(alert)
            except Exception as e:
                logger.error("Alert notification hook failed", alert_id=alert.id, error=str(e))

        return alert

    def acknowledge_alert(self, alert_id: str) -> TimelineAlert:
        alert = self.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        alert.acknowledged = True
        logger.info("Timeline alert acknowledged", alert_id=alert_id)
        return alert

    def dismiss_alert(self, alert_id: str) -> TimelineAlert:
        alert = self.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        self._alerts.remove(alert)
        logger.info("Timeline alert dismissed", alert_id=alert_id)
        return alert

    def clear_all_alerts(self) -> list[TimelineAlert]:
        cleared = self._alerts
        self._alerts = []
        logger.info("Timeline alerts cleared", count=len(cleared))
        return cleared

    def resolve(self, key: AlertKey) -> TimelineAlert | None:
        """Drop the alert for a stage that no longer needs one."""
        removed = self._remove_key(key)
        if removed is not None:
            logger.info(
                "Timeline alert resolved",
                alert_id=removed.id,
                vehicle_id=key.vehicle_id,
                step=key.step.value,
            )
        return removed

    def _remove_key(self, key: AlertKey) -> TimelineAlert | None:
        existing = self.find(key)
        if existing is not None:
            self._alerts.remove(existing)
        return existing

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def load(self, alerts: Iterable[TimelineAlert]) -> None:
        """Replace the collection, keeping the newest alert per slot."""
        by_key: dict[AlertKey, TimelineAlert] = {}
        for alert in alerts:
            current = by_key.get(alert.key)
            if current is None or alert.timestamp >= current.timestamp:
                by_key[alert.key] = alert
        self._alerts = sorted(by_key.values(), key=lambda a: a.timestamp)
