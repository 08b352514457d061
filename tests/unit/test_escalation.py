"""
Tests for escalation timers.
"""

import asyncio

import pytest

from recon_timeline.models.domain.timeline_domain import AlertKey, Stage
from recon_timeline.services.notifications.escalation import EscalationScheduler

KEY = AlertKey("VIN1", Stage.SHOP)


@pytest.mark.asyncio
async def test_timer_fires_callback_once():
    scheduler = EscalationScheduler()
    fired = []

    async def callback():
        fired.append("x")

    await scheduler.schedule(KEY, 0, callback)

    assert fired == ["x"]
    assert KEY not in scheduler


@pytest.mark.asyncio
async def test_rescheduling_same_key_replaces_timer():
    scheduler = EscalationScheduler()
    fired = []

    async def first():
        fired.append("first")

    async def second():
        fired.append("second")

    old = scheduler.schedule(KEY, 0.01, first)
    new = scheduler.schedule(KEY, 0.01, second)
    await asyncio.gather(old, new, return_exceptions=True)

    assert fired == ["second"]
    assert old.cancelled()


@pytest.mark.asyncio
async def test_cancel_prevents_callback():
    scheduler = EscalationScheduler()
    fired = []

    async def callback():
        fired.append("x")

    scheduler.schedule(KEY, 0.01, callback)
    assert scheduler.cancel(KEY) is True
    await asyncio.sleep(0.03)

    assert fired == []
    assert scheduler.cancel(KEY) is False


@pytest.mark.asyncio
async def test_callback_errors_are_contained():
    scheduler = EscalationScheduler()

    async def callback():
        raise RuntimeError("smtp down")

    await scheduler.schedule(KEY, 0, callback)

    assert scheduler.pending_keys == []


@pytest.mark.asyncio
async def test_cancel_all():
    scheduler = EscalationScheduler()

    async def callback():
        pass

    scheduler.schedule(KEY, 10, callback)
    scheduler.schedule(AlertKey("VIN2", Stage.TOTAL), 10, callback)

    assert scheduler.cancel_all() == 2
    assert scheduler.pending_keys == []


@pytest.mark.asyncio
async def test_keep_deadline_does_not_push_timer_out():
    scheduler = EscalationScheduler()
    fired = []

    async def callback():
        fired.append("x")

    scheduler.schedule(KEY, 0.2, callback)
    for _ in range(5):
        await asyncio.sleep(0.05)
        scheduler.schedule(KEY, 0.2, callback, keep_deadline=True)

    await asyncio.sleep(0.05)

    assert fired == ["x"]
    assert KEY not in scheduler


@pytest.mark.asyncio
async def test_plain_reschedule_restarts_full_delay():
    scheduler = EscalationScheduler()

    async def callback():
        pass

    scheduler.schedule(KEY, 10, callback)
    scheduler.schedule(KEY, 20, callback)

    assert scheduler.remaining_seconds(KEY) > 19
    scheduler.cancel(KEY)
    assert scheduler.remaining_seconds(KEY) is None
