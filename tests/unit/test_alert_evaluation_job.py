"""
Tests for the periodic vehicle feed evaluation job.
"""

import httpx
import pytest

from recon_timeline.config import Settings
from recon_timeline.jobs import alert_evaluation_job
from recon_timeline.jobs.alert_evaluation_job import (
    AlertEvaluationJob,
    VehicleFeedError,
    parse_feed,
    run_alert_evaluation_once,
    run_evaluation_loop,
)

FEED_URL = "https://dms.example.com/api/vehicles"


def _feed_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _vehicles_payload():
    return {
        "vehicles": [
            {"id": "v1", "vin": "VIN1", "make": "Ford", "inventory_date": "2024-03-09T12:00:00Z"},
            {"id": "v2", "vin": "VIN2", "inventory_date": "2024-03-14"},
            {"id": "broken", "make": "NoVin"},
            {"id": "v3", "vin": "VIN3", "inventory_date": "yesterday"},
        ]
    }


def test_parse_feed_accepts_list_or_wrapper():
    assert parse_feed([{"vin": "A"}]) == [{"vin": "A"}]
    assert parse_feed({"vehicles": []}) == []
    with pytest.raises(VehicleFeedError):
        parse_feed({"data": []})


def test_job_requires_feed_url(make_runtime):
    with pytest.raises(VehicleFeedError):
        AlertEvaluationJob(make_runtime(), feed_url=None)


@pytest.mark.asyncio
async def test_run_once_evaluates_feed(make_runtime):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json=_vehicles_payload())

    runtime = make_runtime()
    job = AlertEvaluationJob(
        runtime, FEED_URL, feed_token="secret-token", client=_feed_client(handler)
    )

    metrics = await job.run_once()
    await runtime.dispatcher.drain()

    assert seen["auth"] == "Bearer secret-token"
    assert metrics["vehicles_fetched"] == 4
    assert metrics["vehicles_skipped"] == 2
    assert metrics["vehicles_evaluated"] == 2
    assert metrics["overdue"] == 1
    assert [a.vehicle_id for a in runtime.store.alerts] == ["v1"]
    assert job.get_job_status()["last_run_time"] is not None


@pytest.mark.asyncio
async def test_feed_http_error_raises_feed_error(make_runtime):
    job = AlertEvaluationJob(
        make_runtime(), FEED_URL, client=_feed_client(lambda r: httpx.Response(503))
    )

    with pytest.raises(VehicleFeedError) as exc_info:
        await job.run_once()

    assert "503" in str(exc_info.value)
    assert job.is_running is False


@pytest.mark.asyncio
async def test_loop_survives_failed_cycle(make_runtime):
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(500)
        return httpx.Response(200, json=[])

    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    job = AlertEvaluationJob(
        make_runtime(), FEED_URL, interval_minutes=15, client=_feed_client(handler)
    )

    cycles = await run_evaluation_loop(job, max_cycles=2, sleep=fake_sleep)

    assert cycles == 2
    assert calls["n"] == 2
    assert sleeps == [60]
    assert job.last_run_time is not None


@pytest.mark.asyncio
async def test_single_pass_closes_runtime_when_feed_missing(make_runtime, monkeypatch):
    runtime = make_runtime()
    closed = []

    async def fake_build_runtime(config):
        return runtime

    async def fake_shutdown():
        closed.append(True)

    monkeypatch.setattr(alert_evaluation_job, "build_runtime", fake_build_runtime)
    monkeypatch.setattr(runtime, "shutdown", fake_shutdown)

    with pytest.raises(VehicleFeedError):
        await run_alert_evaluation_once(Settings(VEHICLE_FEED_URL=None))

    assert closed == [True]
