"""
Connectivity reconciliation for dashboard consumers.

Answers "is the fleet (or one device) actually live" from a liveness snapshot
and the most recent incidents. Read-only: nothing here touches tracker state.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from core.liveness_tracker import DeviceLivenessState
from core.models.incident import IncidentRecord
from core.models.telemetry import utc_now

DEFAULT_RECENCY_WINDOW = timedelta(minutes=10)


class VerdictSource(Enum):
    TRACKER = "tracker"
    INCIDENTS = "incidents"
    NONE = "none"


@dataclass(frozen=True)
class ConnectivityVerdict:
    connected: bool
    last_seen: Optional[datetime]
    source: VerdictSource
    online_devices: int = 0
    tracked_devices: int = 0


def resolve_connectivity(snapshot: Iterable[DeviceLivenessState],
                         recent_incidents: Iterable[IncidentRecord],
                         now: Optional[datetime] = None,
                         recency_window: timedelta = DEFAULT_RECENCY_WINDOW) -> ConnectivityVerdict:
    """
    Reconcile tracker state with persisted incidents.

    1. Any tracked device online -> connected, last_seen = newest online heartbeat.
    2. Tracked devices but none online -> disconnected. Authoritative, incidents are not consulted.
    3. Nothing tracked -> newest genuine (non-synthetic) incident decides, connected only
       if it is inside ``recency_window``.
    """
    states: List[DeviceLivenessState] = list(snapshot)
    if states:
        online = [s for s in states if s.online]
        if online:
            return ConnectivityVerdict(
                connected=True,
                last_seen=max(s.last_seen for s in online),
                source=VerdictSource.TRACKER,
                online_devices=len(online),
                tracked_devices=len(states),
            )
        return ConnectivityVerdict(
            connected=False,
            last_seen=max(s.last_seen for s in states),
            source=VerdictSource.TRACKER,
            tracked_devices=len(states),
        )

    genuine = [i for i in recent_incidents if not i.is_synthetic]
    if not genuine:
        return ConnectivityVerdict(connected=False, last_seen=None, source=VerdictSource.NONE)

    latest = max(i.timestamp for i in genuine)
    now = now or utc_now()
    return ConnectivityVerdict(
        connected=now - latest <= recency_window,
        last_seen=latest,
        source=VerdictSource.INCIDENTS,
    )
