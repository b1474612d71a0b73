import logging

from fastapi import APIRouter, HTTPException

from core.config_loader import config_loader
from core.liveness_tracker import liveness_tracker
from core.models.telemetry import utc_now
from core.services.ingestion_router import IngestOutcome, ingestion_router
from core.services.synthetic_traffic import build_synthetic_payload
from schemas import AdminAction, AdminActionResponse, SyntheticResponse

logger = logging.getLogger(__name__)

VALID_ACTIONS = ("reset_status", "simulate_online")

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/devices", response_model=AdminActionResponse, responses={
    400: {
        "description": "Unknown action.",
        "content": {"application/json": {"example": {"detail": "Invalid action: wipe. Valid values are: reset_status, simulate_online"}}}
    }
})
async def device_admin(body: AdminAction) -> AdminActionResponse:
    """
    Manual testing and reset tooling:
    - **reset_status**: mark every tracked device offline
    - **simulate_online**: mark `deviceId` (default: the demo bus) online
    """
    if body.action == "reset_status":
        devices = liveness_tracker.mark_all_offline()
        logger.info(f"Admin reset {len(devices)} device(s) to offline")
        return AdminActionResponse(success=True, message="Device status reset to offline",
                                   devices=devices, timestamp=utc_now())

    if body.action == "simulate_online":
        device_id = body.device_id or config_loader.get_ingestion_config().demo_device_id
        liveness_tracker.set_online(device_id, True)
        return AdminActionResponse(success=True, message=f"{device_id} set to online",
                                   devices=[device_id], timestamp=utc_now())

    raise HTTPException(
        status_code=400,
        detail=f"Invalid action: {body.action}. Valid values are: {', '.join(VALID_ACTIONS)}"
    )


@router.post("/synthetic", response_model=SyntheticResponse)
async def send_synthetic_incident() -> SyntheticResponse:
    """Push one synthetic record through the direct channel. It is flagged so it never counts as live traffic."""
    payload = build_synthetic_payload()
    result = await ingestion_router.ingest_via_direct(payload)
    if result.outcome != IngestOutcome.ACCEPTED:
        raise HTTPException(status_code=500, detail=f"Synthetic ingestion failed: {result.message}")
    return SyntheticResponse(
        success=True,
        message="Synthetic data sent successfully",
        pothole_id=result.incident.id,
        test_data=payload,
    )
