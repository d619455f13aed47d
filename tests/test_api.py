"""Tests for the web API routes."""

import pytest
from fastapi.testclient import TestClient

from tests.factories import HOUR, T0, event, events_doc
from usage_lens.core.config import Config
from usage_lens.web.app import create_app


@pytest.fixture
def client(sample_day, kv):
    app = create_app(config=Config(), store=sample_day, kv=kv)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "store_connected": True, "device_count": 1}


def test_health_store_down(client, sample_day):
    sample_day.available = False

    data = client.get("/api/health").json()

    assert data["store_connected"] is False
    assert data["status"].startswith("unhealthy")


def test_devices(client):
    data = client.get("/api/devices").json()

    assert data == {"devices": ["d1"], "selected": "d1", "error": None}


def test_add_device(client):
    response = client.post("/api/devices", json={"device_id": "Galaxy S24"})

    assert response.status_code == 200
    assert response.json()["selected"] == "Galaxy_S24"

    data = client.get("/api/devices").json()
    assert data["devices"] == ["d1", "Galaxy_S24"]
    assert data["selected"] == "Galaxy_S24"


def test_add_blank_device(client):
    assert client.post("/api/devices", json={"device_id": "  "}).status_code == 400


def test_devices_fallback(client, sample_day):
    client.post("/api/devices", json={"device_id": "cached"})
    sample_day.available = False

    data = client.get("/api/devices").json()

    assert data["devices"] == ["cached"]
    assert data["error"].startswith("Device Fetch Error:")


def test_dashboard(client):
    response = client.get("/api/days/d1/2024-05-20/dashboard")

    assert response.status_code == 200
    data = response.json()
    assert data["device"] == "d1"
    assert data["totalScreenTimeMs"] == 500_000
    assert data["batteryPercent"] == 82
    assert data["unlockCadenceMinutes"] == 2
    assert data["apps"][0]["displayName"] == "WhatsApp"
    assert data["apps"][0]["sharePercent"] == 100


def test_dashboard_search(client):
    data = client.get("/api/days/d1/2024-05-20/dashboard", params={"q": "youtube"}).json()

    assert data["apps"] == []
    assert data["totalScreenTimeMs"] == 500_000


def test_dashboard_empty_day(client):
    data = client.get("/api/days/d1/2024-05-21/dashboard").json()

    assert data["usageStats"] is None
    assert data["deviceStats"] is None
    assert data["apps"] == []


def test_invalid_date(client):
    response = client.get("/api/days/d1/2024-13-01/dashboard")

    assert response.status_code == 400
    assert "YYYY-MM-DD" in response.json()["detail"]


def test_store_down(client, sample_day):
    sample_day.available = False

    response = client.get("/api/days/d1/2024-05-20/activity")

    assert response.status_code == 503
    assert response.json()["detail"].startswith("Data Fetch Error:")


def test_malformed_document(client, sample_day):
    sample_day.put("d1", "2024-05-20", "device_bad", {"timestamp": T0})

    response = client.get("/api/days/d1/2024-05-20/dashboard")

    assert response.status_code == 422
    assert "device_bad" in response.json()["detail"]


def test_app_detail(client):
    data = client.get("/api/days/d1/2024-05-20/apps/com.whatsapp").json()

    assert data["packageName"] == "com.whatsapp"
    assert data["sessionCount"] == 1
    assert data["totalDuration"] == 300_000
    assert data["sessions"][0]["endTime"] == T0 + 300_000


def test_activity(client, sample_day):
    sample_day.put("d1", "2024-05-20", "events_0900", events_doc(
        event("com.whatsapp", "APP_OPENED", T0 + HOUR, "WhatsApp"),
        event("com.whatsapp", "APP_CLOSED", T0 + HOUR + 30_000, "WhatsApp"),
    ))

    data = client.get("/api/days/d1/2024-05-20/activity").json()

    assert data["totalSessions"] == 1
    session = data["sessions"][0]
    assert session["id"] == str(T0 + HOUR)
    assert session["dominantApp"]["name"] == "WhatsApp"
    assert session["category"] == "Social"
    assert [s["action"] for s in session["thread"]] == ["OPEN", "CLOSE"]


def test_day_routes_accept_displayed_device_id(client, sample_day):
    sample_day.put("Pixel_7", "2024-05-20", "device_1", {"batteryLevel": 0.5, "timestamp": T0})

    response = client.get("/api/days/Pixel 7/2024-05-20/dashboard")

    assert response.status_code == 200
    assert response.json()["device"] == "Pixel_7"
    assert response.json()["batteryPercent"] == 50


def test_non_finite_battery_is_rejected(client, sample_day):
    sample_day.put(
        "d1", "2024-05-20", "device_0820", {"batteryLevel": float("inf"), "timestamp": T0}
    )

    response = client.get("/api/days/d1/2024-05-20/dashboard")

    assert response.status_code == 422
    assert "device_0820" in response.json()["detail"]
