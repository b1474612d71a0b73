"""Severity / priority classification of vibration intensity."""
from typing import Tuple

from core.models.enums import Priority, Severity

# Intensity is on a 0-100 scale but not clamped; bounds are exclusive.
HIGH_THRESHOLD = 85.0
MEDIUM_THRESHOLD = 65.0


def classify(intensity: float) -> Tuple[Severity, Priority]:
    """
    Map a vibration intensity to its (severity, priority) pair.

    - intensity > 85       -> HIGH / CRITICAL
    - 65 < intensity <= 85 -> MEDIUM / HIGH
    - otherwise            -> LOW / MEDIUM (includes negatives and NaN)
    """
    if intensity > HIGH_THRESHOLD:
        return Severity.HIGH, Priority.CRITICAL
    if intensity > MEDIUM_THRESHOLD:
        return Severity.MEDIUM, Priority.HIGH
    return Severity.LOW, Priority.MEDIUM
