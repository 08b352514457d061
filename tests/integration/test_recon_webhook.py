import json
import time

import pytest
from fastapi.testclient import TestClient

from recon_timeline.config import settings
from recon_timeline.main import create_app
from recon_timeline.routes.webhooks import sign_payload

SECRET = "test-secret"


def _headers(raw: bytes, secret: str = SECRET, timestamp: str | None = None) -> dict:
    timestamp = timestamp or str(int(time.time()))
    return {
        "x-recon-timestamp": timestamp,
        "x-recon-signature": sign_payload(secret, timestamp, raw),
        "Content-Type": "application/json",
    }


def _event(name: str, vehicle: dict | None = None) -> bytes:
    data = {"vehicle": vehicle} if vehicle else {}
    return json.dumps({"event": name, "data": data}).encode("utf-8")


@pytest.fixture
def runtime(make_runtime):
    return make_runtime()


@pytest.fixture
def client(runtime, monkeypatch):
    monkeypatch.setattr(settings, "RECON_WEBHOOK_SECRET", SECRET)
    with TestClient(create_app(runtime=runtime)) as test_client:
        yield test_client


def test_vehicle_update_triggers_evaluation(client, runtime):
    raw = _event(
        "vehicle.updated",
        {"id": "v-42", "vin": "VIN42", "make": "Ford", "inventory_date": "2024-03-09T12:00:00Z"},
    )

    response = client.post("/webhooks/recon", content=raw, headers=_headers(raw))

    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "event": "vehicle.updated",
        "evaluated": True,
        "alerts_raised": 1,
    }
    assert [a.vehicle_id for a in runtime.store.alerts] == ["v-42"]


def test_other_events_are_acknowledged_only(client, runtime):
    for name in ("daily.report", "team.assigned", "something.new"):
        raw = _event(name)
        response = client.post("/webhooks/recon", content=raw, headers=_headers(raw))

        assert response.status_code == 200
        assert response.json()["evaluated"] is False

    assert len(runtime.store) == 0


def test_invalid_signature_rejected(client):
    raw = _event("daily.report")

    response = client.post("/webhooks/recon", content=raw, headers=_headers(raw, secret="wrong"))

    assert response.status_code == 401


def test_missing_signature_rejected(client):
    response = client.post("/webhooks/recon", content=_event("daily.report"))

    assert response.status_code == 401


def test_stale_timestamp_rejected(client):
    raw = _event("daily.report")
    stale = str(int(time.time()) - 3600)

    response = client.post("/webhooks/recon", content=raw, headers=_headers(raw, timestamp=stale))

    assert response.status_code == 401


def test_tampered_body_rejected(client):
    raw = _event("daily.report")
    headers = _headers(raw)

    response = client.post("/webhooks/recon", content=_event("vehicle.completed"), headers=headers)

    assert response.status_code == 401


def test_vehicle_event_without_vin_is_unprocessable(client):
    raw = _event("vehicle.updated", {"id": "v-1", "make": "Ford"})

    response = client.post("/webhooks/recon", content=raw, headers=_headers(raw))

    assert response.status_code == 422


def test_missing_secret_returns_503(client, monkeypatch):
    monkeypatch.setattr(settings, "RECON_WEBHOOK_SECRET", None)
    raw = _event("daily.report")

    response = client.post("/webhooks/recon", content=raw, headers=_headers(raw))

    assert response.status_code == 503
