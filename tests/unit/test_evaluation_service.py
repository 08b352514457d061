"""
Tests for the timeline runtime: evaluation passes, auto-clear and actions.
"""

import asyncio
from datetime import timedelta

import pytest
from conftest import NOW, make_vehicle

from recon_timeline.models.domain.settings_domain import (
    EscalationPreferences,
    NotificationPreferences,
    StageGoal,
    TimelineGoals,
)
from recon_timeline.models.domain.timeline_domain import AlertKey, AlertType, Stage
from recon_timeline.services.state.repository import ALERTS_KEY, GOALS_KEY, StateRepository
from recon_timeline.services.timeline.alert_store import AlertNotFoundError
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime


@pytest.mark.asyncio
async def test_evaluate_raises_and_persists_alerts(make_runtime, fake_redis):
    runtime = make_runtime()

    summary = await runtime.evaluate(
        [make_vehicle(vin="VIN1", shop_days=6), make_vehicle(vin="VIN2", shop_days=4)]
    )
    await runtime.dispatcher.drain()

    assert summary.to_dict() == {
        "vehicles_evaluated": 2,
        "alerts_raised": 2,
        "alerts_cleared": 0,
        "overdue": 1,
        "warning": 1,
    }
    assert ALERTS_KEY in fake_redis.store
    assert len(runtime.dispatcher.hub.recent()) == 2


@pytest.mark.asyncio
async def test_reevaluation_replaces_instead_of_duplicating(make_runtime):
    runtime = make_runtime()
    vehicle = make_vehicle(shop_days=6)

    first = await runtime.evaluate([vehicle])
    second = await runtime.evaluate([vehicle])
    await runtime.dispatcher.drain()

    assert len(runtime.store) == 1
    assert runtime.store.alerts[0].id == second.alerts_raised[0].id
    assert first.alerts_raised[0].id != second.alerts_raised[0].id
    # each pass re-triggers delivery
    assert len(runtime.dispatcher.hub.recent()) == 2


@pytest.mark.asyncio
async def test_completed_stage_alert_is_cleared(make_runtime):
    runtime = make_runtime()
    await runtime.evaluate([make_vehicle(shop_days=6)])

    finished_shop = make_vehicle(shop_days=6, through_shop=True, shop_done=NOW - timedelta(hours=1))
    summary = await runtime.evaluate([finished_shop])

    assert summary.alerts_cleared == [AlertKey(finished_shop.id, Stage.SHOP)]
    assert runtime.store.find(AlertKey(finished_shop.id, Stage.SHOP)) is None


@pytest.mark.asyncio
async def test_auto_clear_can_be_disabled(make_runtime):
    runtime = make_runtime(auto_clear_completed=False)
    await runtime.evaluate([make_vehicle(shop_days=6)])

    await runtime.evaluate([make_vehicle(shop_days=6, through_shop=True, shop_done=NOW)])

    assert runtime.store.find(AlertKey("1HGCM82633A004352", Stage.SHOP)) is not None


@pytest.mark.asyncio
async def test_active_stage_below_threshold_keeps_alert(make_runtime):
    runtime = make_runtime()
    await runtime.evaluate([make_vehicle(shop_days=6)])

    await runtime.update_goals(TimelineGoals(shop=StageGoal(target=20)))
    summary = await runtime.evaluate([make_vehicle(shop_days=6)])

    assert summary.alerts_raised == []
    assert len(runtime.store) == 1


@pytest.mark.asyncio
async def test_acknowledge_cancels_escalation(make_runtime):
    prefs = NotificationPreferences(escalation=EscalationPreferences(enabled=True, delay_minutes=30))
    runtime = make_runtime(preferences=prefs)
    summary = await runtime.evaluate([make_vehicle(shop_days=6)])
    await runtime.dispatcher.drain()
    alert = summary.alerts_raised[0]
    assert alert.key in runtime.dispatcher.escalations

    acknowledged = await runtime.acknowledge(alert.id)

    assert acknowledged.acknowledged is True
    assert alert.key not in runtime.dispatcher.escalations
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_open_alert_escalates_despite_frequent_reevaluation(make_runtime):
    prefs = NotificationPreferences(
        escalation=EscalationPreferences(enabled=True, delay_minutes=0.2 / 60)
    )
    runtime = make_runtime(preferences=prefs)
    vehicle = make_vehicle(shop_days=6)

    for _ in range(10):
        await runtime.evaluate([vehicle])
        await runtime.dispatcher.drain()
        await asyncio.sleep(0.1)

    escalated = [n for n in runtime.dispatcher.hub.recent() if n.tag.endswith("-escalation")]
    assert escalated
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_alert_no_longer_critical_cancels_escalation(make_runtime):
    prefs = NotificationPreferences(escalation=EscalationPreferences(enabled=True, delay_minutes=30))
    runtime = make_runtime(preferences=prefs)
    await runtime.evaluate([make_vehicle(vin="VIN1", shop_days=6)])
    await runtime.dispatcher.drain()
    key = AlertKey("VIN1", Stage.SHOP)
    assert key in runtime.dispatcher.escalations

    await runtime.update_goals(TimelineGoals(shop=StageGoal(target=7)))
    summary = await runtime.evaluate([make_vehicle(vin="VIN1", shop_days=6)])
    await runtime.dispatcher.drain()

    assert summary.alerts_raised[0].type == AlertType.WARNING
    assert key not in runtime.dispatcher.escalations
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_dismiss_and_clear_all(make_runtime):
    runtime = make_runtime()
    summary = await runtime.evaluate(
        [make_vehicle(vin="VIN1", shop_days=6), make_vehicle(vin="VIN2", shop_days=6)]
    )

    await runtime.dismiss(summary.alerts_raised[0].id)
    assert len(runtime.store) == 1

    assert await runtime.clear_all() == 1
    assert len(runtime.store) == 0

    with pytest.raises(AlertNotFoundError):
        await runtime.dismiss("missing")


@pytest.mark.asyncio
async def test_goal_updates_are_persisted_and_used(make_runtime, fake_redis):
    runtime = make_runtime()

    await runtime.update_goals(TimelineGoals(shop=StageGoal(target=3)))
    summary = await runtime.evaluate([make_vehicle(shop_days=3)])

    assert '"target":3' in fake_redis.store[GOALS_KEY].replace(" ", "")
    assert summary.alerts_raised[0].type == AlertType.OVERDUE


@pytest.mark.asyncio
async def test_runtime_reloads_persisted_state(make_runtime, fake_redis):
    runtime = make_runtime()
    await runtime.evaluate([make_vehicle(shop_days=6)])

    reloaded = await TimelineRuntime.create(StateRepository(fake_redis))

    assert [a.vehicle_id for a in reloaded.store.alerts] == ["1HGCM82633A004352"]


@pytest.mark.asyncio
async def test_stats_use_current_goals(make_runtime):
    runtime = make_runtime()

    stats = runtime.stats([make_vehicle(shop_days=6), make_vehicle(vin="X", shop_days=1)], now=NOW)

    assert stats.total == 2
    assert stats.overdue == 1
