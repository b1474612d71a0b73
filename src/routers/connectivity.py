from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from core.config_loader import config_loader
from core.errors import StorageError
from core.liveness_tracker import liveness_tracker
from core.processing.connectivity import resolve_connectivity
from core.services.ingestion_router import ingestion_router
from schemas import ConnectivityResponse

router = APIRouter(prefix="/connectivity", tags=["liveness"])


@router.get("", response_model=ConnectivityResponse)
async def get_connectivity(device_id: Optional[str] = Query(None, alias="deviceId")) -> ConnectivityResponse:
    """
    Reconciled "are devices live" verdict for dashboards polling every ~30s.

    The liveness tracker wins whenever it knows any device; otherwise the most
    recent genuine incident decides (connected if newer than the recency window).
    Pass `deviceId` to scope the verdict to one device.
    """
    cfg = config_loader.get_connectivity_config()
    snapshot = liveness_tracker.snapshot()
    if device_id:
        snapshot = [s for s in snapshot if s.device_id == device_id]

    try:
        incidents = ingestion_router.store.list(
            device_id=device_id, is_synthetic=False, limit=cfg.recent_incident_limit,
        )
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    verdict = resolve_connectivity(
        snapshot,
        incidents,
        recency_window=timedelta(seconds=cfg.recency_window_seconds),
    )
    return ConnectivityResponse(
        connected=verdict.connected,
        last_seen=verdict.last_seen,
        source=verdict.source.value,
        online_devices=verdict.online_devices,
        tracked_devices=verdict.tracked_devices,
    )
