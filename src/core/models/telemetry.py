"""
Telemetry models.

Both delivery channels decode into their own shape first (``RelayMessage`` for
the text relay, ``DirectPayload`` for the direct JSON call) and are normalized
into a single immutable ``TelemetryRecord`` by the ``from_relay`` /
``from_direct`` constructors.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.errors import ErrorKind, TelemetryValidationError
from core.models.enums import Channel, MessageType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_device_timestamp(value: Any) -> Optional[datetime]:
    """Return an aware datetime for ISO-8601 strings, None for anything else.

    Devices also send epoch or uptime counters, and ISO values too close to
    the edge of the calendar to convert to UTC; those give None as well.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def to_document(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Accelerometer:
    x: float
    y: float
    z: float

    def to_document(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


@dataclass(frozen=True)
class Auxiliary:
    """Optional sensor extras carried alongside the mandatory fields."""
    accelerometer: Optional[Accelerometer] = None
    satellite_count: Optional[int] = None
    battery_level: Optional[float] = None
    raw_payload: Optional[str] = None
    sensor_data: Optional[Dict[str, Any]] = None
    device_timestamp: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "accelerometer": self.accelerometer.to_document() if self.accelerometer else None,
            "satelliteCount": self.satellite_count,
            "batteryLevel": self.battery_level,
            "rawPayload": self.raw_payload,
            "sensorData": self.sensor_data,
            "deviceTimestamp": self.device_timestamp,
        }

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Auxiliary":
        if not doc:
            return cls()
        accel = doc.get("accelerometer")
        return cls(
            accelerometer=Accelerometer(**accel) if accel else None,
            satellite_count=doc.get("satelliteCount"),
            battery_level=doc.get("batteryLevel"),
            raw_payload=doc.get("rawPayload"),
            sensor_data=doc.get("sensorData"),
            device_timestamp=doc.get("deviceTimestamp"),
        )


@dataclass(frozen=True)
class RelayMessage:
    """Decoded relay payload, before normalization."""
    message_type: MessageType
    device_id: str
    latitude: float
    longitude: float
    intensity: Optional[float] = None
    device_time: Optional[int] = None
    satellites: Optional[int] = None
    raw_payload: str = ""


class LocationPayload(BaseModel):
    latitude: float
    longitude: float


class AccelerometerPayload(BaseModel):
    x: float
    y: float
    z: float


class DirectPayload(BaseModel):
    """Shape accepted by the direct channel."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    device_id: str = Field(min_length=1)
    timestamp: Optional[Any] = None
    location: LocationPayload
    vibration_intensity: float
    accelerometer: Optional[AccelerometerPayload] = None
    sensor_data: Optional[Dict[str, Any]] = None
    battery_level: Optional[float] = None
    is_synthetic: bool = False


@dataclass(frozen=True)
class TelemetryRecord:
    """One observation from a device. Immutable once built."""
    device_id: str
    timestamp: datetime
    location: Location
    vibration_intensity: float
    channel: Channel
    auxiliary: Auxiliary = field(default_factory=Auxiliary)
    is_synthetic: bool = False

    def __post_init__(self):
        if not isinstance(self.device_id, str) or not self.device_id.strip():
            raise TelemetryValidationError(ErrorKind.MISSING_REQUIRED, "deviceId is required")
        if self.location is None:
            raise TelemetryValidationError(ErrorKind.MISSING_REQUIRED, "location is required")
        if self.vibration_intensity is None:
            raise TelemetryValidationError(ErrorKind.MISSING_REQUIRED, "vibrationIntensity is required")

    @classmethod
    def from_relay(cls, message: RelayMessage, received_at: datetime) -> "TelemetryRecord":
        # Relay device clocks are not trusted: the record is stamped on receipt.
        return cls(
            device_id=message.device_id,
            timestamp=received_at,
            location=Location(message.latitude, message.longitude),
            vibration_intensity=message.intensity,
            channel=Channel.RELAY,
            auxiliary=Auxiliary(
                satellite_count=message.satellites,
                raw_payload=message.raw_payload,
                device_timestamp=str(message.device_time) if message.device_time is not None else None,
            ),
        )

    @classmethod
    def from_direct(cls, payload: DirectPayload, received_at: datetime) -> "TelemetryRecord":
        # Device clocks drift and may run ahead; the record is stamped on receipt and
        # the reported time is kept (normalized to UTC when it is ISO-8601).
        device_time = parse_device_timestamp(payload.timestamp)
        if device_time is not None:
            reported = device_time.isoformat()
        else:
            reported = str(payload.timestamp) if payload.timestamp is not None else None
        accel = payload.accelerometer
        return cls(
            device_id=payload.device_id,
            timestamp=received_at,
            location=Location(payload.location.latitude, payload.location.longitude),
            vibration_intensity=payload.vibration_intensity,
            channel=Channel.DIRECT,
            auxiliary=Auxiliary(
                accelerometer=Accelerometer(accel.x, accel.y, accel.z) if accel else None,
                battery_level=payload.battery_level,
                sensor_data=payload.sensor_data,
                device_timestamp=reported,
            ),
            is_synthetic=payload.is_synthetic,
        )
