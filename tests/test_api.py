"""HTTP API tests through the Flask test client."""

from datetime import timedelta

import pytest

from app.utils.time import utc_now

FARM = {
    "farm_id": "farm-api",
    "name": "API Farm",
    "latitude": 37.39,
    "longitude": -5.98,
    "target_moisture": 80,
    "flow_rate_per_zone": 4,
    "zones": [{"zone_id": "A"}, {"zone_id": "B"}],
}


@pytest.fixture()
def seeded(client):
    assert client.post("/api/v1/farms", json=FARM).status_code == 201
    response = client.post("/api/v1/devices", json={"device_id": "probe-a", "farm_id": "farm-api", "zone_id": "A"})
    assert response.status_code == 201
    return client


def _error(response):
    body = response.get_json()
    assert body["ok"] is False
    assert body["data"] is None
    assert body["error"]["timestamp"]
    return body["error"]


# ==================== farms ====================


def test_register_and_get_farm(client):
    created = client.post("/api/v1/farms", json=FARM)
    assert created.status_code == 201
    body = created.get_json()
    assert body["ok"] is True
    assert body["error"] is None
    assert body["data"]["farm_id"] == "farm-api"

    fetched = client.get("/api/v1/farms/farm-api").get_json()["data"]
    assert [zone["zone_id"] for zone in fetched["zones"]] == ["A", "B"]

    listed = client.get("/api/v1/farms").get_json()["data"]
    assert [farm["farm_id"] for farm in listed] == ["farm-api"]


def test_unversioned_prefix_is_accepted(seeded):
    response = seeded.get("/api/farms/farm-api")
    assert response.status_code == 200
    assert response.get_json()["data"]["name"] == "API Farm"


def test_unknown_farm_is_404(client):
    response = client.get("/api/v1/farms/nope")
    assert response.status_code == 404
    assert _error(response)["code"] == "FARM_NOT_FOUND"


def test_duplicate_farm_is_409(seeded):
    response = seeded.post("/api/v1/farms", json=FARM)
    assert response.status_code == 409
    assert _error(response)["code"] == "DUPLICATE"


def test_invalid_farm_payload_is_400(client):
    response = client.post("/api/v1/farms", json={**FARM, "latitude": 200})
    assert response.status_code == 400
    error = _error(response)
    assert error["code"] == "OUT_OF_RANGE"
    assert error["details"]["errors"][0]["field"] == "latitude"


def test_non_json_body_is_malformed(client):
    response = client.post("/api/v1/farms", data="not json", content_type="text/plain")
    assert response.status_code == 400
    assert _error(response)["code"] == "MALFORMED_PAYLOAD"


def test_unknown_route_returns_json_404(client):
    response = client.get("/api/v1/nothing-here")
    assert response.status_code == 404
    assert response.get_json()["ok"] is False


# ==================== devices & readings ====================


def test_device_on_unknown_zone_is_422(client):
    client.post("/api/v1/farms", json=FARM)
    response = client.post("/api/v1/devices", json={"device_id": "p", "farm_id": "farm-api", "zone_id": "Z"})
    assert response.status_code == 422
    assert _error(response)["code"] == "ZONE_NOT_IN_FARM"


def test_ingest_reading(seeded):
    response = seeded.post("/api/v1/devices/probe-a/readings", json={"moisture_raw": 417, "battery": 90})
    assert response.status_code == 201
    reading = response.get_json()["data"]
    assert reading["moisture"] == 50
    assert reading["device_id"] == "probe-a"

    history = seeded.get("/api/v1/devices/probe-a/readings").get_json()["data"]
    assert len(history) == 1

    device = seeded.get("/api/v1/devices/probe-a").get_json()["data"]
    assert device["statistics"]["total_readings"] == 1


def test_out_of_range_reading_is_rejected(seeded):
    response = seeded.post("/api/v1/devices/probe-a/readings", json={"moisture": 101, "battery": 50})
    assert response.status_code == 400
    assert _error(response)["code"] == "OUT_OF_RANGE"
    assert seeded.get("/api/v1/devices/probe-a/readings").get_json()["data"] == []


def test_reading_for_unknown_device_is_404(seeded):
    response = seeded.post("/api/v1/devices/ghost/readings", json={"moisture": 40, "battery": 50})
    assert response.status_code == 404
    assert _error(response)["code"] == "DEVICE_NOT_FOUND"


def test_calibration_and_thresholds(seeded):
    bad = seeded.put("/api/v1/devices/probe-a/calibration", json={"dry_value": 100, "wet_value": 400})
    assert bad.status_code == 400
    assert _error(bad)["code"] == "INVALID_CALIBRATION"

    good = seeded.put("/api/v1/devices/probe-a/calibration", json={"dry_value": 610, "wet_value": 250})
    assert good.status_code == 200

    patched = seeded.patch("/api/v1/devices/probe-a/thresholds", json={"low_battery": 30})
    assert patched.status_code == 200
    assert patched.get_json()["data"]["low_battery"] == 30


def test_deactivated_device_rejects_readings(seeded):
    assert seeded.post("/api/v1/devices/probe-a/deactivate").status_code == 200
    response = seeded.post("/api/v1/devices/probe-a/readings", json={"moisture": 40, "battery": 50})
    assert response.status_code == 409
    assert _error(response)["code"] == "DEVICE_INACTIVE"


def test_reading_history_window_and_averages(seeded):
    now = utc_now()
    for age, moisture in ((timedelta(days=2), 30), (timedelta(minutes=30), 50)):
        stamp = (now - age).isoformat()
        seeded.post("/api/v1/devices/probe-a/readings", json={"moisture": moisture, "battery": 90, "timestamp": stamp})

    everything = seeded.get("/api/v1/devices/probe-a/readings").get_json()["data"]
    assert len(everything) == 2
    last_day = seeded.get("/api/v1/devices/probe-a/readings", query_string={"range": "24h"}).get_json()["data"]
    assert [r["moisture"] for r in last_day] == [50]

    averages = seeded.get("/api/v1/devices/probe-a/readings/averages", query_string={"range": "7d"})
    assert averages.status_code == 200
    data = averages.get_json()["data"]
    assert data["count"] == 2
    assert data["average_moisture"] == 40.0

    since = (now - timedelta(hours=1)).isoformat()
    windowed = seeded.get("/api/v1/devices/probe-a/readings/averages", query_string={"since": since})
    assert windowed.get_json()["data"]["count"] == 1


def test_unknown_reading_range_is_malformed(seeded):
    response = seeded.get("/api/v1/devices/probe-a/readings", query_string={"range": "2w"})
    assert response.status_code == 400
    assert _error(response)["code"] == "MALFORMED_PAYLOAD"


# ==================== recommendation ====================


def test_recommendation(seeded):
    seeded.post("/api/v1/devices/probe-a/readings", json={"moisture": 20, "battery": 90})

    response = seeded.get("/api/v1/farms/farm-api/recommendation")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["action"] == "irrigate_now"
    assert data["confidence"] >= 0.8
    assert "A" in data["zones"]
    assert data["zone_status"] == {"A": "critical"}


# ==================== irrigation runs ====================


def test_irrigation_run_lifecycle(seeded):
    created = seeded.post(
        "/api/v1/farms/farm-api/irrigation", json={"zones": ["A", "B"], "duration_minutes": 30}
    )
    assert created.status_code == 201
    run = created.get_json()["data"]
    assert run["status"] == "running"
    assert run["planned_volume"] == 240

    second = seeded.post("/api/v1/farms/farm-api/irrigation", json={"zones": ["A"], "duration_minutes": 10})
    assert second.status_code == 409
    assert _error(second)["code"] == "IRRIGATION_ACTIVE"

    active = seeded.get("/api/v1/farms/farm-api/irrigation/active").get_json()["data"]
    assert active["run_id"] == run["run_id"]

    done = seeded.post(
        f"/api/v1/irrigation/runs/{run['run_id']}/complete",
        json={"actual_volume": 216, "moisture_deltas": [{"zone_id": "A", "before": 20, "after": 55}]},
    )
    assert done.status_code == 200
    assert done.get_json()["data"]["efficiency"] == 90

    again = seeded.post(f"/api/v1/irrigation/runs/{run['run_id']}/complete", json={"actual_volume": 10})
    assert again.status_code == 409
    assert _error(again)["code"] == "INVALID_TRANSITION"

    history = seeded.get("/api/v1/farms/farm-api/irrigation").get_json()["data"]
    assert [r["status"] for r in history] == ["completed"]


def test_schedule_start_and_cancel(seeded):
    pending = seeded.post(
        "/api/v1/farms/farm-api/irrigation",
        json={"zones": ["B"], "duration_minutes": 15, "start_now": False, "reason": "scheduled"},
    ).get_json()["data"]
    assert pending["status"] == "pending"
    assert pending["trigger_reason"] == "scheduled"

    started = seeded.post(f"/api/v1/irrigation/runs/{pending['run_id']}/start")
    assert started.get_json()["data"]["status"] == "running"

    cancelled = seeded.post(f"/api/v1/irrigation/runs/{pending['run_id']}/cancel", json={"reason": "wind"})
    assert cancelled.status_code == 200
    assert "Cancelled: wind" in cancelled.get_json()["data"]["notes"]


def test_fail_run_raises_farm_alert(seeded):
    run = seeded.post(
        "/api/v1/farms/farm-api/irrigation", json={"zones": ["A"], "duration_minutes": 5}
    ).get_json()["data"]

    failed = seeded.post(f"/api/v1/irrigation/runs/{run['run_id']}/fail", json={"reason": "pressure drop"})
    assert failed.get_json()["data"]["status"] == "failed"

    alerts = seeded.get("/api/v1/farms/farm-api/alerts?pending=1").get_json()["data"]
    assert any(a["type"] == "system_error" and a["severity"] == "critical" for a in alerts)


def test_irrigation_validation_errors(seeded):
    zone = seeded.post("/api/v1/farms/farm-api/irrigation", json={"zones": ["Q"], "duration_minutes": 10})
    assert zone.status_code == 422
    assert _error(zone)["code"] == "ZONE_NOT_IN_FARM"

    duration = seeded.post("/api/v1/farms/farm-api/irrigation", json={"zones": ["A"], "duration_minutes": 481})
    assert duration.status_code == 400
    assert _error(duration)["code"] == "INVALID_DURATION"

    missing = seeded.get("/api/v1/irrigation/runs/999")
    assert missing.status_code == 404
    assert _error(missing)["code"] == "RUN_NOT_FOUND"


def test_irrigation_statistics(seeded):
    run = seeded.post(
        "/api/v1/farms/farm-api/irrigation", json={"zones": ["A"], "duration_minutes": 10}
    ).get_json()["data"]
    seeded.post(f"/api/v1/irrigation/runs/{run['run_id']}/complete", json={"actual_volume": 36})

    response = seeded.get("/api/v1/farms/farm-api/irrigation/statistics")
    assert response.status_code == 200
    stats = response.get_json()["data"]
    assert stats["total_runs"] == 1
    assert stats["completed_runs"] == 1
    assert stats["total_water_used"] == 36
    assert stats["total_water_planned"] == 40
    assert stats["average_efficiency"] == 90.0

    future = (utc_now() + timedelta(days=1)).isoformat()
    empty = seeded.get("/api/v1/farms/farm-api/irrigation/statistics", query_string={"start": future}).get_json()
    assert empty["data"]["total_runs"] == 0

    now = utc_now()
    inverted = seeded.get(
        "/api/v1/farms/farm-api/irrigation/statistics",
        query_string={"start": now.isoformat(), "end": (now - timedelta(days=1)).isoformat()},
    )
    assert inverted.status_code == 400
    assert _error(inverted)["code"] == "OUT_OF_RANGE"


# ==================== alerts ====================


def test_alert_listing_and_acknowledgement(seeded):
    seeded.post("/api/v1/devices/probe-a/readings", json={"moisture": 15, "battery": 5})

    alerts = seeded.get("/api/v1/farms/farm-api/alerts?pending=true").get_json()["data"]
    assert [a["severity"] for a in alerts] == ["critical", "critical"]
    assert {a["type"] for a in alerts} == {"low_moisture", "low_battery"}

    device_alerts = seeded.get("/api/v1/devices/probe-a/alerts").get_json()["data"]
    assert len(device_alerts) == 2

    alert_id = alerts[0]["alert_id"]
    first = seeded.post(f"/api/v1/alerts/{alert_id}/acknowledge").get_json()["data"]
    second = seeded.post(f"/api/v1/alerts/{alert_id}/acknowledge").get_json()["data"]
    assert first["acknowledged"] is True
    assert second["acknowledged_at"] == first["acknowledged_at"]

    assert len(seeded.get("/api/v1/farms/farm-api/alerts?pending=1").get_json()["data"]) == 1
    assert len(seeded.get("/api/v1/farms/farm-api/alerts").get_json()["data"]) == 2

    missing = seeded.post("/api/v1/alerts/9999/acknowledge")
    assert missing.status_code == 404
    assert _error(missing)["code"] == "ALERT_NOT_FOUND"


# ==================== health ====================


def test_health_ping(client):
    response = client.get("/api/v1/health/ping")
    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "ok"


def test_health_system(client):
    data = client.get("/api/health/system").get_json()["data"]
    assert data["status"] == "healthy"
    assert data["database"]["ok"] is True
    assert data["notifications"]["dropped"] == 0
