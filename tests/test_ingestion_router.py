import time

import pytest

from core.errors import ErrorKind
from core.event_hub import INCIDENT_CREATED, event_hub
from core.models.enums import Channel, IncidentStatus, LivenessState, Priority, Severity
from core.models.telemetry import utc_now
from core.services.incident_store import InMemoryIncidentStore
from core.services.ingestion_router import IngestionRouter, IngestOutcome
from factories import RELAY_HEARTBEAT, RELAY_POTHOLE, direct_payload


class FailingStore(InMemoryIncidentStore):
    def add(self, incident):
        raise ConnectionError("database unreachable")


class SlowStore(InMemoryIncidentStore):
    def add(self, incident):
        time.sleep(1.0)
        return super().add(incident)


class BrokenTracker:
    def heartbeat(self, device_id, now=None):
        raise RuntimeError("tracker down")


class TestRelayChannel:
    """Test text relay ingestion."""

    @pytest.mark.asyncio
    async def test_pothole_is_stored_and_device_online(self, router, store, tracker):
        result = await router.ingest_via_relay({"Body": RELAY_POTHOLE, "From": "+15550100"})

        assert result.outcome == IngestOutcome.ACCEPTED
        assert result.message == "Pothole data processed and stored"
        assert result.device_id == "ESP32-BUS-001"
        assert result.intensity == 90.0

        incidents = store.all()
        assert len(incidents) == 1
        incident = incidents[0]
        assert incident.severity == Severity.HIGH
        assert incident.priority == Priority.CRITICAL
        assert incident.channel == Channel.RELAY
        assert incident.status == IncidentStatus.REPORTED
        assert incident.auxiliary.satellite_count == 8
        assert incident.auxiliary.raw_payload == RELAY_POTHOLE
        assert incident.auxiliary.device_timestamp == "123456"
        assert tracker.get_state("ESP32-BUS-001") == LivenessState.ONLINE

    @pytest.mark.asyncio
    async def test_relay_record_is_stamped_on_receipt(self, router, store):
        before = time.time()
        await router.ingest_via_relay({"Body": RELAY_POTHOLE})
        stamp = store.all()[0].timestamp.timestamp()
        assert before - 1 <= stamp <= time.time() + 1

    @pytest.mark.asyncio
    async def test_heartbeat_updates_liveness_only(self, router, store, tracker):
        result = await router.ingest_via_relay({"Body": RELAY_HEARTBEAT})

        assert result.outcome == IngestOutcome.HEARTBEAT
        assert result.message == "Heartbeat processed"
        assert store.all() == []
        assert tracker.get("ESP32-BUS-001").online is True

    @pytest.mark.asyncio
    async def test_heartbeat_brings_offline_device_back(self, router, tracker):
        tracker.set_online("ESP32-BUS-001", False)
        await router.ingest_via_relay({"Body": RELAY_HEARTBEAT})
        assert tracker.get_state("ESP32-BUS-001") == LivenessState.ONLINE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("form", [{}, {"Body": ""}, {"From": "+15550100"}])
    async def test_missing_body(self, router, form):
        result = await router.ingest_via_relay(form)
        assert result.outcome == IngestOutcome.REJECTED
        assert result.error_kind == ErrorKind.MISSING_BODY
        assert result.message == "No message body"

    @pytest.mark.asyncio
    async def test_malformed_body_is_rejected(self, router, store, tracker):
        result = await router.ingest_via_relay({"Body": "HELLO|DEV:ESP32-BUS-001"})
        assert result.outcome == IngestOutcome.REJECTED
        assert result.error_kind == ErrorKind.BAD_PREFIX
        assert result.message == "Invalid SMS format"
        assert store.all() == []
        assert tracker.snapshot() == []

    @pytest.mark.asyncio
    async def test_pothole_without_intensity_is_rejected(self, router, store, tracker):
        body = RELAY_HEARTBEAT.replace("TYPE:HEARTBEAT", "TYPE:POTHOLE")
        result = await router.ingest_via_relay({"Body": body})
        assert result.outcome == IngestOutcome.REJECTED
        assert result.error_kind == ErrorKind.MISSING_REQUIRED
        assert store.all() == []
        assert tracker.snapshot() == []


class TestDirectChannel:
    """Test direct JSON ingestion."""

    @pytest.mark.asyncio
    async def test_low_intensity_is_stored(self, router, store, tracker):
        result = await router.ingest_via_direct(direct_payload())

        assert result.outcome == IngestOutcome.ACCEPTED
        incident = store.get(result.incident.id)
        assert incident.severity == Severity.LOW
        assert incident.priority == Priority.MEDIUM
        assert incident.channel == Channel.DIRECT
        assert incident.auxiliary.battery_level == 88.5
        assert incident.auxiliary.accelerometer.z == 1.0
        assert incident.auxiliary.device_timestamp == "2026-03-01T08:00:00+00:00"
        assert tracker.get_state("ESP32-BUS-002") == LivenessState.ONLINE

    @pytest.mark.asyncio
    async def test_non_iso_timestamp_falls_back_to_receipt_time(self, router, store):
        result = await router.ingest_via_direct(direct_payload(timestamp=123456))
        incident = store.get(result.incident.id)
        assert incident.timestamp.year >= 2026
        assert incident.auxiliary.device_timestamp == "123456"

    @pytest.mark.asyncio
    async def test_device_clock_ahead_is_not_the_record_time(self, router, store):
        before = utc_now()
        result = await router.ingest_via_direct(direct_payload(timestamp="2099-01-01T00:00:00Z"))
        incident = store.get(result.incident.id)
        assert before <= incident.timestamp <= utc_now()
        assert incident.auxiliary.device_timestamp == "2099-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_unconvertible_iso_timestamp_is_accepted(self, router, store):
        result = await router.ingest_via_direct(direct_payload(timestamp="0001-01-01T00:00:00+01:00"))
        assert result.outcome == IngestOutcome.ACCEPTED
        assert store.get(result.incident.id).auxiliary.device_timestamp == "0001-01-01T00:00:00+01:00"

    @pytest.mark.asyncio
    async def test_unauthorized_prefix(self, router, store, tracker):
        result = await router.ingest_via_direct(direct_payload(deviceId="ROGUE-1"))
        assert result.outcome == IngestOutcome.REJECTED
        assert result.error_kind == ErrorKind.UNAUTHORIZED_DEVICE
        assert result.message == "Unauthorized device"
        assert store.all() == []
        assert tracker.snapshot() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"deviceId": "ESP32-BUS-002"},
        direct_payload(vibrationIntensity="very bumpy"),
        direct_payload(location={"latitude": 19.0}),
        direct_payload(deviceId=""),
    ])
    async def test_invalid_shape(self, router, store, payload):
        result = await router.ingest_via_direct(payload)
        assert result.outcome == IngestOutcome.REJECTED
        assert result.error_kind == ErrorKind.INVALID_SHAPE
        assert result.message == "Invalid data format"
        assert store.all() == []

    @pytest.mark.asyncio
    async def test_synthetic_record_does_not_touch_liveness(self, router, store, tracker):
        result = await router.ingest_via_direct(direct_payload(isSynthetic=True, vibrationIntensity=90.0))
        assert result.outcome == IngestOutcome.ACCEPTED
        assert store.get(result.incident.id).is_synthetic is True
        assert tracker.snapshot() == []


class TestDegradedWrites:
    """Test that storage failures are acknowledged, not rejected."""

    @pytest.mark.asyncio
    async def test_storage_failure(self, tracker):
        router = IngestionRouter(FailingStore(), tracker, storage_timeout=0.2, device_id_prefix="ESP32")
        result = await router.ingest_via_relay({"Body": RELAY_POTHOLE})

        assert result.outcome == IngestOutcome.DEGRADED
        assert result.acknowledged is True
        assert result.error_kind == ErrorKind.STORAGE_FAILURE
        assert result.message == "Telemetry received but storage failed - check logs"
        assert "database unreachable" in result.detail
        assert tracker.get_state("ESP32-BUS-001") == LivenessState.ONLINE

    @pytest.mark.asyncio
    async def test_storage_timeout(self, tracker):
        router = IngestionRouter(SlowStore(), tracker, storage_timeout=0.05, device_id_prefix="ESP32")
        result = await router.ingest_via_direct(direct_payload())

        assert result.outcome == IngestOutcome.DEGRADED
        assert result.error_kind == ErrorKind.STORAGE_TIMEOUT

    @pytest.mark.asyncio
    async def test_lost_record_is_logged(self, tracker, caplog):
        router = IngestionRouter(FailingStore(), tracker, storage_timeout=0.2, device_id_prefix="ESP32")
        with caplog.at_level("ERROR"):
            await router.ingest_via_relay({"Body": RELAY_POTHOLE})
        assert any('"deviceId": "ESP32-BUS-001"' in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_liveness_failure_is_swallowed(self, store):
        router = IngestionRouter(store, BrokenTracker(), storage_timeout=0.2, device_id_prefix="ESP32")

        result = await router.ingest_via_relay({"Body": RELAY_POTHOLE})
        assert result.outcome == IngestOutcome.ACCEPTED
        assert len(store.all()) == 1

        result = await router.ingest_via_relay({"Body": RELAY_HEARTBEAT})
        assert result.outcome == IngestOutcome.HEARTBEAT


class TestEvents:

    @pytest.mark.asyncio
    async def test_accepted_incident_is_published(self, router):
        received = []
        event_hub.subscribe(INCIDENT_CREATED, lambda topic, msg: received.append(msg))

        result = await router.ingest_via_direct(direct_payload(vibrationIntensity=70.0))

        assert len(received) == 1
        assert received[0]["id"] == result.incident.id
        assert received[0]["severity"] == "MEDIUM"

    @pytest.mark.asyncio
    async def test_rejected_and_degraded_are_not_published(self, tracker):
        received = []
        event_hub.subscribe(INCIDENT_CREATED, lambda topic, msg: received.append(msg))
        router = IngestionRouter(FailingStore(), tracker, storage_timeout=0.2, device_id_prefix="ESP32")

        await router.ingest_via_relay({"Body": "garbage"})
        await router.ingest_via_relay({"Body": RELAY_POTHOLE})

        assert received == []
