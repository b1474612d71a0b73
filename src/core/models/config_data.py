from dataclasses import dataclass, field


@dataclass
class LivenessConfig:
    offline_threshold_seconds: float = 3600.0
    sweep_interval_seconds: float = 300.0
    lock_timeout_seconds: float = 1.0


@dataclass
class ConnectivityConfig:
    recency_window_seconds: float = 600.0
    recent_incident_limit: int = 50


@dataclass
class IngestionConfig:
    device_id_prefix: str = "ESP32"
    storage_timeout_seconds: float = 5.0
    demo_device_id: str = "ESP32-BUS-001"
    synthetic_device_id: str = "ESP32-BUS-TEST"


@dataclass
class StorageConfig:
    backend: str = "memory"
    path: str = "storage/data/incidents.jsonl"


@dataclass
class configData:
    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
