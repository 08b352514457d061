"""
Tests for timeline state persistence.
"""

import json

import pytest
from conftest import FakeRedis, make_alert

from recon_timeline.models.domain.settings_domain import (
    NotificationPreferences,
    StageGoal,
    TimelineGoals,
    WebhookPreferences,
)
from recon_timeline.models.domain.timeline_domain import Stage
from recon_timeline.services.state.file_store import FileKeyValueStore
from recon_timeline.services.state.repository import (
    ALERTS_KEY,
    GOALS_KEY,
    PREFERENCES_KEY,
    StateRepository,
    StateStoreError,
    TimelineState,
)


@pytest.mark.asyncio
async def test_empty_store_loads_defaults():
    state = await StateRepository(FakeRedis()).load()

    assert state.goals == TimelineGoals()
    assert state.preferences == NotificationPreferences()
    assert state.alerts == []


@pytest.mark.asyncio
async def test_state_round_trip(fake_redis):
    repository = StateRepository(fake_redis)
    state = TimelineState(
        goals=TimelineGoals(shop=StageGoal(target=7, warning=70)),
        preferences=NotificationPreferences(
            webhooks=WebhookPreferences(enabled=True, endpoints=["https://hooks.slack.com/x"])
        ),
        alerts=[make_alert(), make_alert(alert_id="alert-2", step=Stage.TOTAL)],
    )

    await repository.save(state)
    loaded = await StateRepository(fake_redis).load()

    assert loaded.goals.shop.target == 7
    assert loaded.preferences.webhooks.endpoints[0].target.value == "slack"
    assert [a.id for a in loaded.alerts] == ["alert-1", "alert-2"]
    assert loaded.alerts[0].timestamp == state.alerts[0].timestamp
    assert set(fake_redis.store) == {GOALS_KEY, PREFERENCES_KEY, ALERTS_KEY}


@pytest.mark.asyncio
async def test_default_preferences_seed_missing_entry(fake_redis):
    seeded = NotificationPreferences()
    seeded.email.smtp_host = "smtp.dealer.com"

    state = await StateRepository(fake_redis, default_preferences=seeded).load()

    assert state.preferences.email.smtp_host == "smtp.dealer.com"
    assert state.preferences is not seeded


@pytest.mark.asyncio
async def test_corrupt_entries_fall_back_to_defaults(fake_redis):
    fake_redis.store[GOALS_KEY] = '{"shop": {"target": 0}}'
    fake_redis.store[ALERTS_KEY] = json.dumps([{"id": "x"}])

    state = await StateRepository(fake_redis).load()

    assert state.goals == TimelineGoals()
    assert state.alerts == []


@pytest.mark.asyncio
async def test_store_errors_are_wrapped():
    class BrokenStore(FakeRedis):
        async def get(self, key):
            raise ConnectionError("redis down")

        async def set_with_ttl(self, key, value, ttl_s=None):
            return False

    repository = StateRepository(BrokenStore())

    with pytest.raises(StateStoreError) as read_error:
        await repository.load()
    assert read_error.value.operation == "read"

    with pytest.raises(StateStoreError) as write_error:
        await repository.save_goals(TimelineGoals())
    assert write_error.value.key == GOALS_KEY


@pytest.mark.asyncio
async def test_clear_removes_every_key(fake_redis):
    repository = StateRepository(fake_redis)
    await repository.save(TimelineState())

    await repository.clear()

    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_file_store_round_trip(tmp_path):
    path = tmp_path / "state" / "timeline.json"
    store = FileKeyValueStore(path)

    assert await store.get("missing") is None
    assert await store.set_with_ttl("a", "1") is True
    assert await store.get("a") == "1"
    assert json.loads(path.read_text())["a"] == "1"
    assert await store.delete("a") is True
    assert await store.delete("a") is False
    assert await store.ping() is True


@pytest.mark.asyncio
async def test_repository_over_file_store(tmp_path):
    repository = StateRepository(FileKeyValueStore(tmp_path / "timeline.json"))
    await repository.save(TimelineState(alerts=[make_alert()]))

    loaded = await StateRepository(FileKeyValueStore(tmp_path / "timeline.json")).load()

    assert [a.id for a in loaded.alerts] == ["alert-1"]
