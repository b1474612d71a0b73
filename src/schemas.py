from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from core.models.enums import Channel, IncidentStatus, Priority, Severity


class CamelModel(BaseModel):
    """Wire models use camelCase keys, Python code uses snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AppHealthOK(BaseModel):
    status: str
    app: str


class EndpointStatus(BaseModel):
    status: str
    message: str
    timestamp: datetime


# --- ingestion ---

class RelayResponse(CamelModel):
    status: Literal["success", "warning", "error"]
    message: str
    device_id: Optional[str] = None
    intensity: Optional[float] = None
    error: Optional[str] = None


class DirectResponse(CamelModel):
    success: bool
    pothole_id: Optional[str] = None
    message: str
    error: Optional[str] = None


# --- liveness ---

class DeviceStatus(CamelModel):
    device_id: str
    last_seen: Optional[datetime] = None
    online: bool


class DeviceList(BaseModel):
    devices: List[DeviceStatus]


class DeviceAction(CamelModel):
    device_id: Optional[str] = None
    action: Optional[str] = None


class DeviceActionResponse(CamelModel):
    success: bool
    device_id: str
    status: DeviceStatus


# --- incidents ---

class LocationOut(BaseModel):
    latitude: float
    longitude: float


class AccelerometerOut(BaseModel):
    x: float
    y: float
    z: float


class AuxiliaryOut(CamelModel):
    accelerometer: Optional[AccelerometerOut] = None
    satellite_count: Optional[int] = None
    battery_level: Optional[float] = None
    raw_payload: Optional[str] = None
    sensor_data: Optional[Dict[str, Any]] = None
    device_timestamp: Optional[str] = None


class IncidentOut(CamelModel):
    id: str
    device_id: str
    timestamp: datetime
    location: LocationOut
    vibration_intensity: float
    channel: Channel
    auxiliary: AuxiliaryOut
    severity: Severity
    priority: Priority
    status: IncidentStatus
    is_synthetic: bool
    created_at: datetime
    updated_at: datetime


class IncidentList(BaseModel):
    incidents: List[IncidentOut]
    count: int


class StatusUpdate(BaseModel):
    status: IncidentStatus


class IncidentStats(CamelModel):
    total_incidents: int
    severity_breakdown: Dict[str, int]
    status_breakdown: Dict[str, int]
    tracked_devices: int
    online_devices: int


# --- connectivity ---

class ConnectivityResponse(CamelModel):
    connected: bool
    last_seen: Optional[datetime] = None
    source: str
    online_devices: int
    tracked_devices: int


# --- admin ---

class AdminAction(CamelModel):
    action: str
    device_id: Optional[str] = None


class AdminActionResponse(CamelModel):
    success: bool
    message: str
    devices: List[str]
    timestamp: datetime


class SyntheticResponse(CamelModel):
    success: bool
    message: str
    pothole_id: Optional[str] = None
    test_data: Dict[str, Any]
