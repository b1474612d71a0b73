"""Synthetic direct-channel traffic for end-to-end checks of a deployment."""
import logging
import random
from typing import Any, Dict, Optional

from core.config_loader import config_loader
from core.models.telemetry import utc_now

logger = logging.getLogger(__name__)

# Mumbai, where the pilot fleet runs
BASE_LATITUDE = 19.0760
BASE_LONGITUDE = 72.8777


def build_synthetic_payload(device_id: Optional[str] = None,
                            rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """Direct-channel payload flagged ``isSynthetic`` so it never counts as field connectivity."""
    rng = rng or random.Random()
    return {
        "deviceId": device_id or config_loader.get_ingestion_config().synthetic_device_id,
        "timestamp": utc_now().isoformat(),
        "location": {
            "latitude": BASE_LATITUDE + (rng.random() - 0.5) * 0.01,
            "longitude": BASE_LONGITUDE + (rng.random() - 0.5) * 0.01,
        },
        "vibrationIntensity": 75 + rng.random() * 20,
        "accelerometer": {
            "x": (rng.random() - 0.5) * 2,
            "y": (rng.random() - 0.5) * 2,
            "z": 1 + (rng.random() - 0.5) * 0.5,
        },
        "sensorData": {
            "mpuIntensity": rng.randint(0, 99),
            "sw420Intensity": rng.randint(0, 99),
        },
        "batteryLevel": 80 + rng.random() * 20,
        "isSynthetic": True,
    }
