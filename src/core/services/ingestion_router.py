import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from core.config_loader import config_loader
from core.errors import (
    ErrorKind,
    ParseError,
    StorageError,
    StorageTimeoutError,
    TelemetryValidationError,
)
from core.event_hub import INCIDENT_CREATED, event_hub
from core.liveness_tracker import LivenessTracker, liveness_tracker
from core.models.enums import MessageType
from core.models.incident import IncidentRecord
from core.models.telemetry import DirectPayload, TelemetryRecord, utc_now
from core.processing.protocol_parser import parse
from core.services.incident_store import IncidentStore, incident_store

logger = logging.getLogger(__name__)

RELAY_BODY_FIELD = "Body"


class IngestOutcome(Enum):
    ACCEPTED = "accepted"      # incident persisted
    HEARTBEAT = "heartbeat"    # liveness only, nothing persisted
    DEGRADED = "degraded"      # acknowledged, but the incident write failed
    REJECTED = "rejected"      # malformed or unauthorized input


@dataclass(frozen=True)
class IngestResult:
    outcome: IngestOutcome
    message: str
    device_id: Optional[str] = None
    intensity: Optional[float] = None
    incident: Optional[IncidentRecord] = None
    error_kind: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @property
    def acknowledged(self) -> bool:
        return self.outcome != IngestOutcome.REJECTED


class IngestionRouter:
    """
    Funnels both delivery channels through one write path.

    Relay (text messages) and direct (JSON) inputs are decoded by their own
    front half, normalized into a TelemetryRecord, classified, persisted and
    finally reported to the liveness tracker before the result is returned.
    Liveness is best effort; a failed incident write is reported but does
    not reject the message.
    """

    def __init__(self, store: IncidentStore, tracker: LivenessTracker,
                 storage_timeout: Optional[float] = None,
                 device_id_prefix: Optional[str] = None):
        cfg = config_loader.get_ingestion_config()
        self.store = store
        self.tracker = tracker
        self.storage_timeout = storage_timeout if storage_timeout is not None else cfg.storage_timeout_seconds
        self.device_id_prefix = device_id_prefix if device_id_prefix is not None else cfg.device_id_prefix

    # --- relay channel -------------------------------------------------

    async def ingest_via_relay(self, form: Mapping[str, Any]) -> IngestResult:
        body = form.get(RELAY_BODY_FIELD)
        if not body:
            logger.warning("❌ Relay message without body")
            return self._reject(ErrorKind.MISSING_BODY, "No message body")

        received_at = utc_now()
        try:
            message = parse(body)
        except ParseError as e:
            logger.warning(f"❌ Failed to parse relay message: {e} | {str(body)[:100]!r}")
            return self._reject(e.kind, "Invalid SMS format", detail=str(e))

        if message.message_type == MessageType.HEARTBEAT:
            self._touch(message.device_id, received_at)
            logger.info(f"💓 Heartbeat from {message.device_id} via relay")
            return IngestResult(IngestOutcome.HEARTBEAT, "Heartbeat processed", device_id=message.device_id)

        try:
            record = TelemetryRecord.from_relay(message, received_at)
        except TelemetryValidationError as e:
            logger.warning(f"❌ Rejected relay pothole from {message.device_id}: {e}")
            return self._reject(e.kind, "Invalid SMS format", device_id=message.device_id, detail=str(e))

        return await self._ingest(record, received_at)

    # --- direct channel ------------------------------------------------

    async def ingest_via_direct(self, payload: Any) -> IngestResult:
        received_at = utc_now()
        try:
            data = DirectPayload.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"❌ Invalid direct payload: {e.error_count()} error(s)")
            return self._reject(ErrorKind.INVALID_SHAPE, "Invalid data format", detail=str(e))

        if not data.device_id.startswith(self.device_id_prefix):
            logger.warning(f"❌ Unauthorized device {data.device_id}")
            return self._reject(ErrorKind.UNAUTHORIZED_DEVICE, "Unauthorized device", device_id=data.device_id)

        try:
            record = TelemetryRecord.from_direct(data, received_at)
        except TelemetryValidationError as e:
            return self._reject(e.kind, "Invalid data format", device_id=data.device_id, detail=str(e))

        return await self._ingest(record, received_at)

    # --- shared write path ---------------------------------------------

    async def _ingest(self, record: TelemetryRecord, received_at: datetime) -> IngestResult:
        incident = IncidentRecord.from_telemetry(record, now=received_at)
        try:
            await self._persist(incident)
        except StorageError as e:
            # Full document in the log so the record can be replayed by hand
            logger.error(
                f"❌ Incident write failed for {record.device_id} via {record.channel.value}: {e} | "
                f"lost record: {json.dumps(incident.to_document())}"
            )
            if not record.is_synthetic:
                self._touch(record.device_id, received_at)
            return IngestResult(
                IngestOutcome.DEGRADED,
                "Telemetry received but storage failed - check logs",
                device_id=record.device_id,
                intensity=record.vibration_intensity,
                incident=incident,
                error_kind=e.kind,
                detail=str(e),
            )

        if not record.is_synthetic:
            self._touch(record.device_id, received_at)
        logger.info(
            f"✅ Stored incident {incident.id} from {record.device_id} via {record.channel.value} "
            f"(intensity {record.vibration_intensity}, {incident.severity.value})"
        )
        event_hub.publish(INCIDENT_CREATED, incident.to_document())
        return IngestResult(
            IngestOutcome.ACCEPTED,
            "Pothole data processed and stored",
            device_id=record.device_id,
            intensity=record.vibration_intensity,
            incident=incident,
        )

    async def _persist(self, incident: IncidentRecord):
        try:
            await asyncio.wait_for(asyncio.to_thread(self.store.add, incident), timeout=self.storage_timeout)
        except asyncio.TimeoutError as e:
            raise StorageTimeoutError(f"Store did not answer within {self.storage_timeout}s") from e
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"{type(e).__name__}: {e}") from e

    def _touch(self, device_id: str, now: datetime):
        try:
            self.tracker.heartbeat(device_id, now=now)
        except Exception as e:
            logger.error(f"⚠ Liveness update failed for {device_id}: {e}")

    @staticmethod
    def _reject(kind: ErrorKind, message: str, device_id: Optional[str] = None,
                detail: Optional[str] = None) -> IngestResult:
        return IngestResult(IngestOutcome.REJECTED, message, device_id=device_id, error_kind=kind, detail=detail)


# Global instance
ingestion_router = IngestionRouter(incident_store, liveness_tracker)
