"""
Integration tests for the HTTP and WebSocket API.

The app runs its real lifespan with in-memory fake adapters.
"""
import pytest
from fastapi.testclient import TestClient

from rockguard.main import create_app

LAT, LON = 28.6139, 77.2090
CONDITION_KEY = "location:28.6139,77.2090"


@pytest.fixture
def client(test_settings, weather_adapter, hydrology_adapter, seismic_adapter):
    app = create_app(test_settings, adapters=[weather_adapter, hydrology_adapter, seismic_adapter])
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def high_risk_client(test_settings, high_risk_adapter):
    app = create_app(test_settings, adapters=[high_risk_adapter])
    with TestClient(app) as test_client:
        yield test_client


# =============================================================================
# Service
# =============================================================================


@pytest.mark.integration
class TestServiceEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["providers"] == ["fake_weather", "fake_hydrology", "fake_seismic"]
        assert data["alerts"]["persisted"] is False
        assert data["personnel"]["simulated"] is False


# =============================================================================
# Telemetry
# =============================================================================


@pytest.mark.integration
class TestTelemetryEndpoints:

    def test_pull(self, client):
        response = client.get("/api/v1/telemetry", params={"lat": LAT, "lon": LON})

        assert response.status_code == 200
        data = response.json()
        assert data["location"] == {"lat": LAT, "lon": LON}
        assert data["risk"]["level"] == "LOW"
        assert data["degraded"] is False

    def test_pull_rejects_out_of_range_location(self, client):
        response = client.get("/api/v1/telemetry", params={"lat": 91, "lon": 0})
        assert response.status_code == 422

    def test_pull_requires_coordinates(self, client):
        assert client.get("/api/v1/telemetry", params={"lat": LAT}).status_code == 422

    def test_history(self, client):
        client.get("/api/v1/telemetry", params={"lat": LAT, "lon": LON})

        response = client.get("/api/v1/telemetry/history", params={"lat": LAT, "lon": LON})

        assert response.status_code == 200
        points = response.json()["points"]
        assert len(points) == 1
        assert 45 <= points[0]["threshold"] <= 75

    def test_websocket_receives_current_value(self, client):
        with client.websocket_connect(f"/api/v1/telemetry/ws?lat={LAT}&lon={LON}") as ws:
            message = ws.receive_json()

        assert message["type"] == "telemetry"
        assert message["data"]["risk"]["level"] == "LOW"

    def test_high_risk_raises_one_condition(self, high_risk_client):
        for _ in range(3):
            response = high_risk_client.get("/api/v1/telemetry", params={"lat": LAT, "lon": LON})
            assert response.json()["risk"]["level"] == "HIGH"

        alerts = high_risk_client.get("/api/v1/alerts", params={"status": "RAISED"}).json()
        assert alerts["total"] == 1
        assert alerts["alerts"][0]["condition"] == CONDITION_KEY


# =============================================================================
# Alerts
# =============================================================================


@pytest.mark.integration
class TestAlertEndpoints:

    def test_test_alert_then_list(self, client):
        created = client.post("/api/v1/alerts/test", params={"level": "MEDIUM"})

        assert created.status_code == 201
        assert created.json()["status"] == "TEST"

        listing = client.get("/api/v1/alerts").json()
        assert listing["total"] == 1
        assert listing["alerts"][0]["level"] == "MEDIUM"

    def test_invalid_level_filter(self, client):
        assert client.get("/api/v1/alerts", params={"level": "SEVERE"}).status_code == 422

    def test_clear(self, client):
        client.post("/api/v1/alerts/test")

        response = client.delete("/api/v1/alerts")

        assert response.status_code == 200
        assert response.json()["tombstone"]["status"] == "CLEARED"
        assert client.get("/api/v1/alerts").json()["total"] == 0

    def test_acknowledge_and_resolve(self, high_risk_client):
        high_risk_client.get("/api/v1/telemetry", params={"lat": LAT, "lon": LON})
        base = f"/api/v1/alerts/conditions/{CONDITION_KEY}"

        first = high_risk_client.post(f"{base}/acknowledge")
        second = high_risk_client.post(f"{base}/acknowledge")
        resolved = high_risk_client.post(f"{base}/resolve")

        assert first.status_code == 200
        assert first.json()["status"] == "ACKNOWLEDGED"
        assert second.status_code == 409
        assert resolved.json()["status"] == "RESOLVED"

        conditions = high_risk_client.get("/api/v1/alerts/conditions").json()["conditions"]
        assert conditions[0]["state"] == "RESOLVED"

    def test_unknown_condition(self, client):
        response = client.post("/api/v1/alerts/conditions/location:1.0000,1.0000/acknowledge")
        assert response.status_code == 404


# =============================================================================
# Personnel
# =============================================================================


@pytest.mark.integration
class TestPersonnelEndpoints:

    def register(self, client, worker_id="W-100", x=5, y=95):
        return client.post(
            "/api/v1/personnel",
            json={"id": worker_id, "x": x, "y": y, "name": "Kavya", "phone": "+91-90000-00100",
                  "heart_rate_bpm": 78},
        )

    def test_register_and_list(self, client):
        response = self.register(client)

        assert response.status_code == 201
        assert response.json()["risk"] == "SAFE"

        live = client.get("/api/v1/personnel/live").json()
        assert live["totals"] == {"safe": 1, "caution": 0, "emergency": 0}
        assert live["workers"][0]["id"] == "W-100"

    def test_sos_report_raises_worker_alert(self, client):
        self.register(client)

        response = client.put("/api/v1/personnel/W-100", json={"sos": True})

        assert response.status_code == 200
        worker = response.json()
        assert worker["risk"] == "EMERGENCY"
        assert worker["risk_score"] == 100
        assert worker["vitals"]["heart_rate_bpm"] == 78

        alerts = client.get("/api/v1/alerts", params={"source": "worker-emergency"}).json()
        assert alerts["total"] == 1
        assert alerts["alerts"][0]["details"]["worker"]["phone"] == "+91-90000-00100"

        emergency = client.get("/api/v1/personnel", params={"only": "EMERGENCY"}).json()
        assert [w["id"] for w in emergency["workers"]] == ["W-100"]

    def test_position_update(self, client):
        self.register(client)

        response = client.put("/api/v1/personnel/W-100", json={"x": 74, "y": 26})

        assert response.json()["zone"] == "Sector C"

    def test_partial_position_is_rejected(self, client):
        self.register(client)
        assert client.put("/api/v1/personnel/W-100", json={"x": 10}).status_code == 422

    def test_out_of_map_position_is_rejected(self, client):
        self.register(client)
        assert client.put("/api/v1/personnel/W-100", json={"x": 120, "y": 5}).status_code == 422

    def test_unknown_worker(self, client):
        assert client.put("/api/v1/personnel/W-404", json={"sos": True}).status_code == 404

    def test_trend_starts_empty(self, client):
        assert client.get("/api/v1/personnel/trend").json() == {"points": []}
