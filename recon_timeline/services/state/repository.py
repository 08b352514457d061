"""
Timeline state container and its persistence boundary.

TimelineState groups goals, notification preferences and alerts into one
object that is passed explicitly to the services. StateRepository is the
only place that reads or writes it, through any key/value backend exposing
get / set_with_ttl / delete.
"""

import json
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import ValidationError

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.settings_domain import NotificationPreferences, TimelineGoals
from recon_timeline.models.domain.timeline_domain import TimelineAlert

logger = get_logger(__name__)

KEY_PREFIX = "recon:timeline"
GOALS_KEY = f"{KEY_PREFIX}:goals"
PREFERENCES_KEY = f"{KEY_PREFIX}:preferences"
ALERTS_KEY = f"{KEY_PREFIX}:alerts"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...


class StateStoreError(Exception):
    """Raised when timeline state cannot be read or written."""

    def __init__(self, message: str, operation: str, key: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.key = key


@dataclass(slots=True)
class TimelineState:
    goals: TimelineGoals = field(default_factory=TimelineGoals)
    preferences: NotificationPreferences = field(default_factory=NotificationPreferences)
    alerts: list[TimelineAlert] = field(default_factory=list)


class StateRepository:
    def __init__(self, store: KeyValueStore, default_preferences: NotificationPreferences | None = None):
        self.store = store
        self._default_preferences = default_preferences

    async def _read(self, key: str) -> str | None:
        try:
            return await self.store.get(key)
        except Exception as e:
            raise StateStoreError(f"Failed to read {key}: {e}", operation="read", key=key) from e

    async def _write(self, key: str, value: str) -> None:
        try:
            ok = await self.store.set_with_ttl(key, value)
        except Exception as e:
            raise StateStoreError(f"Failed to write {key}: {e}", operation="write", key=key) from e
        if not ok:
            raise StateStoreError(f"Store rejected write for {key}", operation="write", key=key)

    async def load(self) -> TimelineState:
        """Load persisted state; missing or corrupt entries fall back to defaults."""
        state = TimelineState()
        if self._default_preferences is not None:
            state.preferences = self._default_preferences.model_copy(deep=True)

        raw_goals = await self._read(GOALS_KEY)
        if raw_goals:
            try:
                state.goals = TimelineGoals.model_validate_json(raw_goals)
            except ValidationError as e:
                logger.warning("Stored goals invalid, using defaults", error=str(e))

        raw_prefs = await self._read(PREFERENCES_KEY)
        if raw_prefs:
            try:
                state.preferences = NotificationPreferences.model_validate_json(raw_prefs)
            except ValidationError as e:
                logger.warning("Stored preferences invalid, using defaults", error=str(e))

        raw_alerts = await self._read(ALERTS_KEY)
        if raw_alerts:
            try:
                state.alerts = [TimelineAlert.from_dict(item) for item in json.loads(raw_alerts)]
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Stored alerts invalid, starting empty", error=str(e))

        logger.info(
            "Timeline state loaded",
            alerts=len(state.alerts),
            email_enabled=state.preferences.email.enabled,
            webhooks_enabled=state.preferences.webhooks.enabled,
        )
        return state

    async def save_goals(self, goals: TimelineGoals) -> None:
        await self._write(GOALS_KEY, goals.model_dump_json())

    async def save_preferences(self, preferences: NotificationPreferences) -> None:
        await self._write(PREFERENCES_KEY, preferences.model_dump_json())

    async def save_alerts(self, alerts: list[TimelineAlert]) -> None:
        await self._write(ALERTS_KEY, json.dumps([alert.to_dict() for alert in alerts]))

    async def save(self, state: TimelineState) -> None:
        await self.save_goals(state.goals)
        await self.save_preferences(state.preferences)
        await self.save_alerts(state.alerts)

    async def clear(self) -> None:
        for key in (GOALS_KEY, PREFERENCES_KEY, ALERTS_KEY):
            try:
                await self.store.delete(key)
            except Exception as e:
                raise StateStoreError(f"Failed to delete {key}: {e}", operation="delete", key=key) from e
