"""Enumerations shared by telemetry, incident and liveness models."""
from enum import Enum


class Channel(Enum):
    """Delivery channel a telemetry record arrived on."""
    RELAY = "RELAY"
    DIRECT = "DIRECT"


class MessageType(Enum):
    """Relay message types understood by the protocol parser."""
    POTHOLE = "POTHOLE"
    HEARTBEAT = "HEARTBEAT"


class Severity(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Priority(Enum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IncidentStatus(Enum):
    """Incident lifecycle. Declaration order is the only allowed direction."""
    REPORTED = "REPORTED"
    VERIFIED = "VERIFIED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @property
    def rank(self) -> int:
        return list(IncidentStatus).index(self)


class LivenessState(Enum):
    """Device liveness states."""
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"
