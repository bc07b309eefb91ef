"""
API tests over the in-memory container.

Tests cover:
- Point, batch and sunny-near exposure endpoints
- Timeline and best sun window endpoints
- Solar, precomputation, cache and building height endpoints
- Error mapping (400, 404, 409, 422) and health checks
"""
from datetime import date
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from sunexposure import main
from sunexposure.dependencies import get_container
from sunexposure.main import app
from sunexposure.models.precomputation_schedule import ScheduleStatus

NOON = "2026-06-21T11:00:00Z"


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:

    def test_liveness(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_readiness(self, client, monkeypatch):
        async def ready():
            return True

        monkeypatch.setattr(main, "_database_ready", ready)
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready(self, client, monkeypatch):
        async def not_ready():
            return False

        monkeypatch.setattr(main, "_database_ready", not_ready)
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["error"] == "Database connection failed"

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"


class TestSunExposureEndpoints:

    def test_point_query(self, client, patio):
        response = client.get(f"/api/patios/{patio.id}/sun-exposure", params={"timestamp": NOON})

        assert response.status_code == 200
        data = response.json()
        assert data["patio_id"] == str(patio.id)
        assert data["state"] == "sunny"
        assert data["sun_exposure_percent"] == 100.0
        assert data["confidence"] == 60.0
        assert data["affecting_buildings_count"] == 0
        assert data["confidence_factors"]["category"] == "medium"

    def test_point_query_defaults_to_now(self, client, patio):
        response = client.get(f"/api/patios/{patio.id}/sun-exposure")
        assert response.status_code == 200
        assert response.json()["timestamp"].startswith("2026-06-21T11:00:00")

    def test_shaded_patio(self, client, patio, southern_block):
        data = client.get(f"/api/patios/{patio.id}/sun-exposure", params={"timestamp": NOON}).json()
        assert data["state"] == "shaded"
        assert data["affecting_buildings_count"] == 1

    def test_unknown_patio(self, client):
        missing = uuid4()
        response = client.get(f"/api/patios/{missing}/sun-exposure", params={"timestamp": NOON})

        assert response.status_code == 404
        assert response.json() == {"error": f"Patio {missing} not found", "status_code": 404}

    def test_non_utc_timestamp(self, client, patio):
        response = client.get(
            f"/api/patios/{patio.id}/sun-exposure",
            params={"timestamp": "2026-06-21T13:00:00+02:00"},
        )
        assert response.status_code == 400
        assert "UTC" in response.json()["error"]

    def test_non_utc_timestamp_after_warm_query(self, client, patio):
        warm = client.get(f"/api/patios/{patio.id}/sun-exposure", params={"timestamp": NOON})
        assert warm.status_code == 200

        response = client.get(
            f"/api/patios/{patio.id}/sun-exposure",
            params={"timestamp": "2026-06-21T13:00:00+02:00"},
        )
        assert response.status_code == 400

        batch = client.post(
            "/api/sun-exposure/batch",
            json={"patio_ids": [str(patio.id)], "timestamp": "2026-06-21T13:00:00+02:00"},
        )
        assert batch.status_code == 400

    def test_batch(self, client, patio):
        missing = uuid4()
        response = client.post(
            "/api/sun-exposure/batch",
            json={"patio_ids": [str(patio.id), str(missing)], "timestamp": NOON},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["requested"] == 2
        assert data["returned"] == 1
        assert list(data["results"]) == [str(patio.id)]
        assert data["results"][str(patio.id)]["source"] == "realtime_batch"

    def test_batch_limit(self, client):
        response = client.post(
            "/api/sun-exposure/batch",
            json={"patio_ids": [str(uuid4()) for _ in range(101)], "timestamp": NOON},
        )
        assert response.status_code == 400

    def test_sunny_near(self, client, patio):
        response = client.get(
            "/api/sun-exposure/sunny-near",
            params={"latitude": 57.7089, "longitude": 11.9746, "radius_km": 0.5, "timestamp": NOON},
        )

        assert response.status_code == 200
        patios = response.json()["patios"]
        assert [p["patio_id"] for p in patios] == [str(patio.id)]

    def test_sunny_near_rejects_bad_latitude(self, client):
        response = client.get("/api/sun-exposure/sunny-near", params={"latitude": 95, "longitude": 0})
        assert response.status_code == 422


class TestTimelineEndpoints:

    def test_timeline(self, client, patio):
        response = client.get(
            f"/api/patios/{patio.id}/timeline",
            params={"start": "2026-06-21T10:00:00Z", "end": "2026-06-21T12:00:00Z", "resolution_minutes": 30},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["interval_minutes"] == 30.0
        assert len(data["points"]) == 5
        assert data["calculated_points"] == 5
        assert data["sun_windows"][0]["quality"] == "fair"
        assert data["sun_windows"][0]["duration_minutes"] == 120.0
        assert data["summary"]["total_sunny_minutes"] == 150.0

    def test_timeline_range_too_long(self, client, patio):
        response = client.get(
            f"/api/patios/{patio.id}/timeline",
            params={"start": "2026-06-21T00:00:00Z", "end": "2026-06-23T01:00:00Z"},
        )
        assert response.status_code == 400
        assert "48 hours" in response.json()["error"]

    def test_timeline_resolution_too_fine(self, client, patio):
        response = client.get(
            f"/api/patios/{patio.id}/timeline",
            params={"start": "2026-06-21T10:00:00Z", "end": "2026-06-21T11:00:00Z", "resolution_minutes": 0},
        )
        assert response.status_code == 400

    def test_best_windows(self, client, patio):
        response = client.get(
            f"/api/patios/{patio.id}/sun-windows/best",
            params={"start": "2026-06-21T10:00:00Z", "end": "2026-06-21T12:00:00Z", "max_windows": 2},
        )

        assert response.status_code == 200
        windows = response.json()["windows"]
        assert len(windows) == 1
        assert windows[0]["average_exposure"] == 100.0

    def test_best_windows_unknown_patio(self, client):
        response = client.get(
            f"/api/patios/{uuid4()}/sun-windows/best",
            params={"start": "2026-06-21T10:00:00Z", "end": "2026-06-21T12:00:00Z"},
        )
        assert response.status_code == 404


class TestSolarEndpoints:

    def test_position(self, client):
        response = client.get(
            "/api/solar/position",
            params={"timestamp": NOON, "latitude": 57.7089, "longitude": 11.9746},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["elevation"] == pytest.approx(55.6, abs=0.5)
        assert data["local_time"].startswith("2026-06-21T13:00:00")

    def test_position_rejects_latitude(self, client):
        response = client.get("/api/solar/position", params={"timestamp": NOON, "latitude": 91, "longitude": 0})
        assert response.status_code == 400

    def test_sun_times(self, client):
        response = client.get(
            "/api/solar/sun-times",
            params={"date": "2026-03-20", "latitude": 57.7089, "longitude": 11.9746},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == "2026-03-20"
        assert 11.9 < data["day_length_hours"] < 12.6


class TestPrecomputationEndpoints:

    def test_schedule_and_status(self, client):
        created = client.post("/api/precomputation/2026-06-22/schedule")
        assert created.status_code == 201
        assert created.json()["status"] == "scheduled"

        again = client.post("/api/precomputation/2026-06-22/schedule")
        assert again.json()["id"] == created.json()["id"]

        status = client.get("/api/precomputation/2026-06-22")
        assert status.status_code == 200
        assert status.json()["target_date"] == "2026-06-22"

    def test_unknown_date(self, client):
        response = client.get("/api/precomputation/2026-07-01")
        assert response.status_code == 404
        assert response.json()["error"] == "No precomputation scheduled for 2026-07-01"

    def test_execute_and_integrity(self, client, patio):
        response = client.post("/api/precomputation/2026-06-22/execute")

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["patios_processed"] == 1

        integrity = client.get("/api/precomputation/2026-06-22/integrity").json()
        assert integrity["expected_points"] == 73
        assert integrity["actual_points"] == 73
        assert integrity["is_valid"]

    def test_execute_while_running(self, client, container, patio):
        client.post("/api/precomputation/2026-06-22/schedule")
        container.precomputation_repository.schedules[
            date(2026, 6, 22)
        ].status = ScheduleStatus.RUNNING.value

        response = client.post("/api/precomputation/2026-06-22/execute")
        assert response.status_code == 409

    def test_invalidate(self, client, patio):
        client.post("/api/precomputation/2026-06-22/execute")

        response = client.post(
            "/api/precomputation/invalidate",
            json={"patio_ids": [str(patio.id)], "from_date": "2026-06-22"},
        )

        assert response.status_code == 200
        assert response.json()["rows_invalidated"] == 73
        integrity = client.get("/api/precomputation/2026-06-22/integrity").json()
        assert integrity["actual_points"] == 0

    def test_invalidate_requires_patios(self, client):
        response = client.post("/api/precomputation/invalidate", json={"patio_ids": []})
        assert response.status_code == 422


class TestCacheEndpoints:

    def test_health(self, client):
        response = client.get("/api/cache/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics_follow_queries(self, client, patio):
        client.get(f"/api/patios/{patio.id}/sun-exposure", params={"timestamp": NOON})
        client.get(f"/api/patios/{patio.id}/sun-exposure", params={"timestamp": NOON})

        metrics = client.get("/api/cache/metrics").json()

        assert metrics["total_requests"] == 2
        assert metrics["cache_hits"] == 1
        assert metrics["hit_rate_by_layer"]["memory"] == 0.5

    def test_invalidate_patio(self, client, patio):
        client.get(f"/api/patios/{patio.id}/sun-exposure", params={"timestamp": NOON})

        response = client.delete(f"/api/cache/patios/{patio.id}", params={"target_date": "2026-06-21"})

        assert response.status_code == 200
        assert response.json()["keys_removed"] == 2


class TestBuildingEndpoints:

    def test_height_lifecycle(self, client, southern_block):
        url = f"/api/buildings/{southern_block.id}/height"

        current = client.get(url).json()
        assert current["effective_height_m"] == 30.0
        assert current["height_source"] == "surveyed"

        overridden = client.put(url, json={"height_m": 45.0}).json()
        assert overridden["effective_height_m"] == 45.0
        assert overridden["admin_override_m"] == 45.0
        assert overridden["height_source"] == "admin_override"

        restored = client.delete(url).json()
        assert restored["effective_height_m"] == 30.0
        assert restored["admin_override_m"] is None

    def test_override_limits(self, client, southern_block):
        url = f"/api/buildings/{southern_block.id}/height"
        assert client.put(url, json={"height_m": 250.0}).status_code == 400
        assert client.put(url, json={"height_m": 0}).status_code == 422

    def test_unknown_building(self, client):
        response = client.get(f"/api/buildings/{uuid4()}/height")
        assert response.status_code == 404
