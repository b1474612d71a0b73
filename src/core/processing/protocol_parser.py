"""
Decoder for the pipe-delimited relay protocol.

    ROADPULSE|DEV:<id>|LAT:<f>|LNG:<f>|INT:<f>|TIME:<i>|SATS:<i>|TYPE:<POTHOLE|HEARTBEAT>

The parser is pure: it never performs I/O and only ever raises ``ParseError``.
"""
import math
import re
from typing import Dict, Optional

from core.errors import ErrorKind, ParseError
from core.models.enums import MessageType
from core.models.telemetry import RelayMessage

PREFIX = "ROADPULSE|"
SEPARATOR = "|"

FLOAT_FIELDS = ("LAT", "LNG", "INT")
INT_FIELDS = ("TIME", "SATS")
TEXT_FIELDS = ("DEV", "TYPE")
KNOWN_FIELDS = FLOAT_FIELDS + INT_FIELDS + TEXT_FIELDS
REQUIRED_FIELDS = ("DEV", "LAT", "LNG", "TYPE")

# Leading numeric prefix; anything after it is ignored.
_FLOAT_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_RE = re.compile(r"\s*([+-]?)(\d+)")

# TIME and SATS are device counters; longer digit runs are rejected.
MAX_INT_DIGITS = 18


def _parse_float(key: str, value: str) -> float:
    match = _FLOAT_RE.match(value)
    if match is None:
        raise ParseError(ErrorKind.BAD_FIELD, key, f"Non-numeric value {value!r}")
    try:
        number = float(match.group(1))
    except (ValueError, OverflowError):
        raise ParseError(ErrorKind.BAD_FIELD, key, f"Unreadable number {value[:32]!r}")
    if not math.isfinite(number):
        raise ParseError(ErrorKind.BAD_FIELD, key, f"Number out of range {value[:32]!r}")
    return number


def _parse_int(key: str, value: str) -> int:
    match = _INT_RE.match(value)
    if match is None:
        raise ParseError(ErrorKind.BAD_FIELD, key, f"Non-integer value {value!r}")
    sign, digits = match.groups()
    if len(digits.lstrip("0")) > MAX_INT_DIGITS:
        raise ParseError(ErrorKind.BAD_FIELD, key, f"Integer too long ({len(digits)} digits)")
    return int(sign + (digits.lstrip("0") or "0"))


def _scan_segments(body: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for segment in body.split(SEPARATOR):
        key, sep, value = segment.partition(":")
        if not sep or key not in KNOWN_FIELDS:
            continue
        fields[key] = value
    return fields


def parse(payload: str) -> RelayMessage:
    """Decode a relay payload into a ``RelayMessage``.

    Raises:
        ParseError: with kind BAD_PREFIX, BAD_FIELD, MISSING_REQUIRED or UNKNOWN_MESSAGE_TYPE.
    """
    if not isinstance(payload, str) or not payload.startswith(PREFIX):
        raise ParseError(ErrorKind.BAD_PREFIX, detail=f"Payload must start with {PREFIX!r}")

    raw = _scan_segments(payload[len(PREFIX):])

    numbers: Dict[str, Optional[float]] = {}
    for key in FLOAT_FIELDS:
        numbers[key] = _parse_float(key, raw[key]) if key in raw else None
    integers: Dict[str, Optional[int]] = {}
    for key in INT_FIELDS:
        integers[key] = _parse_int(key, raw[key]) if key in raw else None

    missing = [key for key in REQUIRED_FIELDS if key not in raw or (key in TEXT_FIELDS and not raw[key].strip())]
    if missing:
        raise ParseError(ErrorKind.MISSING_REQUIRED, ",".join(missing), "Missing required fields")

    try:
        message_type = MessageType(raw["TYPE"])
    except ValueError:
        raise ParseError(ErrorKind.UNKNOWN_MESSAGE_TYPE, "TYPE", f"Unknown message type {raw['TYPE']!r}")

    return RelayMessage(
        message_type=message_type,
        device_id=raw["DEV"],
        latitude=numbers["LAT"],
        longitude=numbers["LNG"],
        intensity=numbers["INT"],
        device_time=integers["TIME"],
        satellites=integers["SATS"],
        raw_payload=payload,
    )
