"""End-to-end tests for the relay and direct ingestion endpoints."""
from fastapi.testclient import TestClient

from core.liveness_tracker import liveness_tracker
from core.service_manager import service_manager
from core.services.incident_store import InMemoryIncidentStore
from core.services.ingestion_router import ingestion_router
from factories import RELAY_HEARTBEAT, RELAY_POTHOLE, direct_payload
from main import app

client = TestClient(app)


class FailingStore(InMemoryIncidentStore):
    def add(self, incident):
        raise ConnectionError("database unreachable")


class TestRelayEndpoint:
    """Test POST /api/relay."""

    def test_pothole_end_to_end(self):
        """A relay pothole is stored as HIGH and the bus shows up online."""
        response = client.post("/api/relay", data={"Body": RELAY_POTHOLE, "From": "+15550100"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["message"] == "Pothole data processed and stored"
        assert data["deviceId"] == "ESP32-BUS-001"
        assert data["intensity"] == 90.0
        assert "error" not in data

        incidents = client.get("/api/incidents").json()["incidents"]
        assert len(incidents) == 1
        assert incidents[0]["severity"] == "HIGH"
        assert incidents[0]["priority"] == "CRITICAL"
        assert incidents[0]["channel"] == "RELAY"
        assert incidents[0]["status"] == "REPORTED"

        device = client.get("/api/devices/ESP32-BUS-001").json()
        assert device["online"] is True
        assert device["lastSeen"] is not None

    def test_heartbeat(self):
        """Heartbeats are acknowledged without creating an incident."""
        response = client.post("/api/relay", data={"Body": RELAY_HEARTBEAT})
        assert response.status_code == 200
        assert response.json()["message"] == "Heartbeat processed"
        assert client.get("/api/incidents").json()["count"] == 0
        assert client.get("/api/devices/ESP32-BUS-001").json()["online"] is True

    def test_missing_body(self):
        response = client.post("/api/relay", data={"From": "+15550100"})
        assert response.status_code == 400
        assert response.json() == {"status": "error", "message": "No message body", "error": "missing_body"}

    def test_bad_payload(self):
        """Malformed payloads get 400 with the parse error kind."""
        response = client.post("/api/relay", data={"Body": "ROADPULSE|DEV:X|LAT:abc|LNG:1|TYPE:POTHOLE"})
        assert response.status_code == 400
        data = response.json()
        assert data["status"] == "error"
        assert data["message"] == "Invalid SMS format"
        assert data["error"] == "bad_field"

    def test_oversized_number_is_bad_field(self):
        body = "ROADPULSE|DEV:ESP32-BUS-001|LAT:19.0|LNG:72.8|TYPE:HEARTBEAT|TIME:" + "1" * 5000
        response = client.post("/api/relay", data={"Body": body})
        assert response.status_code == 400
        assert response.json()["error"] == "bad_field"
        assert client.get("/api/devices").json()["devices"] == []

    def test_storage_failure_is_still_acknowledged(self, monkeypatch):
        """The relay never retries, so a failed write answers 200 with a warning."""
        monkeypatch.setattr(ingestion_router, "store", FailingStore())
        response = client.post("/api/relay", data={"Body": RELAY_POTHOLE})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "warning"
        assert data["error"] == "Database storage failed"
        assert data["message"] == "Telemetry received but storage failed - check logs"
        assert client.get("/api/devices/ESP32-BUS-001").json()["online"] is True

    def test_status_check(self):
        response = client.get("/api/relay")
        assert response.status_code == 200
        assert response.json()["status"] == "online"


class TestDirectEndpoint:
    """Test POST /api/direct."""

    def test_low_intensity_payload(self):
        """Intensity 40 is stored as LOW / MEDIUM priority."""
        response = client.post("/api/direct", json=direct_payload())
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Device data received and processed successfully"

        incident = client.get(f"/api/incidents/{data['potholeId']}").json()
        assert incident["severity"] == "LOW"
        assert incident["priority"] == "MEDIUM"
        assert incident["channel"] == "DIRECT"
        assert incident["auxiliary"]["batteryLevel"] == 88.5
        assert incident["location"] == {"latitude": 19.0760, "longitude": 72.8777}

    def test_timestamp_outside_utc_range_is_accepted(self):
        """ISO values that cannot be converted to UTC are kept as text, not rejected."""
        response = client.post("/api/direct", json=direct_payload(timestamp="0001-01-01T00:00:00+01:00"))
        assert response.status_code == 200
        assert response.json()["success"] is True

        incident = client.get(f"/api/incidents/{response.json()['potholeId']}").json()
        assert incident["auxiliary"]["deviceTimestamp"] == "0001-01-01T00:00:00+01:00"

    def test_missing_fields(self):
        response = client.post("/api/direct", json={"deviceId": "ESP32-BUS-002"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid data format", "error": "invalid_shape"}

    def test_not_json(self):
        response = client.post("/api/direct", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_shape"

    def test_unauthorized_device(self):
        response = client.post("/api/direct", json=direct_payload(deviceId="PHONE-7"))
        assert response.status_code == 403
        assert response.json() == {"success": False, "message": "Unauthorized device", "error": "unauthorized_device"}
        assert client.get("/api/devices").json()["devices"] == []

    def test_storage_failure(self, monkeypatch):
        """Direct callers own their retries, so a failed write is a 500."""
        monkeypatch.setattr(ingestion_router, "store", FailingStore())
        response = client.post("/api/direct", json=direct_payload())
        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error", "error": "storage_failure"}

    def test_status_check(self):
        response = client.get("/api/direct")
        assert response.status_code == 200
        assert response.json()["message"] == "Direct ingestion endpoint is working"


def test_root_and_health():
    assert client.get("/").json() == {"message": "RoadPulse Ingestion API"}
    assert client.get("/health").json() == {"status": "ok", "app": "RoadPulse Ingestion API"}


def test_lifespan_starts_and_stops_services():
    """Entering the app starts the liveness sweep; leaving it stops it."""
    with TestClient(app) as managed:
        assert service_manager.running is True
        assert managed.post("/api/relay", data={"Body": RELAY_HEARTBEAT}).status_code == 200
    assert service_manager.running is False
    assert liveness_tracker.is_sweeping is False
