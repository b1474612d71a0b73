from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from core.errors import StatusTransitionError, StorageError
from core.liveness_tracker import liveness_tracker
from core.models.enums import IncidentStatus, Severity
from core.models.incident import IncidentRecord
from core.services.incident_store import MAX_PAGE_SIZE
from core.services.ingestion_router import ingestion_router
from schemas import IncidentList, IncidentOut, IncidentStats, StatusUpdate

router = APIRouter(prefix="/incidents", tags=["incidents"])


def to_incident_out(incident: IncidentRecord) -> IncidentOut:
    return IncidentOut.model_validate(incident.to_document())


def _parse_enum(enum_cls, name: str, value: Optional[str]):
    if value is None:
        return None
    try:
        return enum_cls[value.upper()]
    except KeyError:
        valid = ", ".join(e.name for e in enum_cls)
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}. Valid values are: {valid}")


@router.get("", response_model=IncidentList)
async def list_incidents(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    severity: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
) -> IncidentList:
    """Most-recent-first page of incidents, optionally filtered by device, severity or status."""
    sev = _parse_enum(Severity, "severity", severity)
    st = _parse_enum(IncidentStatus, "status", status)
    try:
        incidents = ingestion_router.store.list(device_id=device_id, severity=sev, status=st, limit=limit)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return IncidentList(incidents=[to_incident_out(i) for i in incidents], count=len(incidents))


@router.get("/stats", response_model=IncidentStats)
async def incident_stats() -> IncidentStats:
    """Severity and status breakdown plus tracked/online device counts."""
    try:
        breakdown = ingestion_router.store.stats()
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    devices = liveness_tracker.snapshot()
    return IncidentStats(
        total_incidents=sum(breakdown["severity"].values()),
        severity_breakdown=breakdown["severity"],
        status_breakdown=breakdown["status"],
        tracked_devices=len(devices),
        online_devices=sum(1 for d in devices if d.online),
    )


@router.get("/{incident_id}", response_model=IncidentOut)
async def get_incident(incident_id: str) -> IncidentOut:
    incident = ingestion_router.store.get(incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail=f"Incident {incident_id} not found")
    return to_incident_out(incident)


@router.patch("/{incident_id}/status", response_model=IncidentOut, responses={
    404: {"description": "Unknown incident id."},
    409: {
        "description": "The lifecycle only moves forward.",
        "content": {"application/json": {"example": {"detail": "Cannot move incident 1f2e from VERIFIED back to REPORTED"}}}
    }
})
async def update_incident_status(incident_id: str, body: StatusUpdate) -> IncidentOut:
    """
    Advance an incident through REPORTED -> VERIFIED -> IN_PROGRESS -> COMPLETED.
    Called by the repair workflow; sensor fields are never modified.
    """
    try:
        incident = ingestion_router.store.update_status(incident_id, body.status)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Incident {incident_id} not found")
    except StatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return to_incident_out(incident)
