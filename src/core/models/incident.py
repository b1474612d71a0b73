"""Incident record model."""
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional

from core.errors import StatusTransitionError
from core.models.enums import Channel, IncidentStatus, Priority, Severity
from core.models.telemetry import Auxiliary, Location, TelemetryRecord, utc_now
from core.processing.classifier import classify


@dataclass(frozen=True)
class IncidentRecord:
    """
    A classified, persisted telemetry event.
    Severity and priority are derived from the intensity at creation and cannot be set afterwards.
    """
    id: str
    device_id: str
    timestamp: datetime
    location: Location
    vibration_intensity: float
    channel: Channel
    auxiliary: Auxiliary
    severity: Severity
    priority: Priority
    status: IncidentStatus = IncidentStatus.REPORTED
    is_synthetic: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_telemetry(cls, record: TelemetryRecord, incident_id: Optional[str] = None,
                       now: Optional[datetime] = None) -> "IncidentRecord":
        severity, priority = classify(record.vibration_intensity)
        created = now or utc_now()
        return cls(
            id=incident_id or uuid.uuid4().hex,
            device_id=record.device_id,
            timestamp=record.timestamp,
            location=record.location,
            vibration_intensity=record.vibration_intensity,
            channel=record.channel,
            auxiliary=record.auxiliary,
            severity=severity,
            priority=priority,
            is_synthetic=record.is_synthetic,
            created_at=created,
            updated_at=created,
        )

    def advance_status(self, status: IncidentStatus, now: Optional[datetime] = None) -> "IncidentRecord":
        """Return a copy moved forward to ``status``. Same-status moves are no-ops."""
        if status.rank < self.status.rank:
            raise StatusTransitionError(
                f"Cannot move incident {self.id} from {self.status.value} back to {status.value}"
            )
        if status == self.status:
            return self
        return replace(self, status=status, updated_at=now or utc_now())

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "timestamp": self.timestamp.isoformat(),
            "location": self.location.to_document(),
            "vibrationIntensity": self.vibration_intensity,
            "channel": self.channel.value,
            "auxiliary": self.auxiliary.to_document(),
            "severity": self.severity.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "isSynthetic": self.is_synthetic,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "IncidentRecord":
        location = doc["location"]
        return cls(
            id=doc["id"],
            device_id=doc["deviceId"],
            timestamp=datetime.fromisoformat(doc["timestamp"]),
            location=Location(location["latitude"], location["longitude"]),
            vibration_intensity=doc["vibrationIntensity"],
            channel=Channel(doc["channel"]),
            auxiliary=Auxiliary.from_document(doc.get("auxiliary")),
            severity=Severity(doc["severity"]),
            priority=Priority(doc["priority"]),
            status=IncidentStatus(doc.get("status", IncidentStatus.REPORTED.value)),
            is_synthetic=doc.get("isSynthetic", False),
            created_at=datetime.fromisoformat(doc["createdAt"]),
            updated_at=datetime.fromisoformat(doc["updatedAt"]),
        )
