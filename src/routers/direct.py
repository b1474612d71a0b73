import logging

from fastapi import APIRouter, Request, Response

from core.errors import ErrorKind
from core.models.telemetry import utc_now
from core.services.ingestion_router import IngestOutcome, ingestion_router
from schemas import DirectResponse, EndpointStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/direct", tags=["ingestion"])


@router.post("", response_model=DirectResponse, response_model_exclude_none=True, responses={
    400: {
        "description": "Payload is not JSON or misses deviceId, vibrationIntensity or location.",
        "content": {"application/json": {"example": {"success": False, "message": "Invalid data format", "error": "invalid_shape"}}}
    },
    403: {
        "description": "Device id does not carry the authorized prefix.",
        "content": {"application/json": {"example": {"success": False, "message": "Unauthorized device", "error": "unauthorized_device"}}}
    },
    500: {
        "description": "The incident could not be stored. The device should retry.",
        "content": {"application/json": {"example": {"success": False, "message": "Internal server error", "error": "storage_failure"}}}
    }
})
async def ingest_direct_payload(request: Request, response: Response) -> DirectResponse:
    """
    Direct device call:
    `{deviceId, timestamp, location: {latitude, longitude}, vibrationIntensity, accelerometer?, sensorData?, batteryLevel?}`.

    Unlike the relay, storage failures surface as HTTP 500 because the caller owns its retry policy.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    result = await ingestion_router.ingest_via_direct(payload)

    if result.outcome == IngestOutcome.REJECTED:
        response.status_code = 403 if result.error_kind == ErrorKind.UNAUTHORIZED_DEVICE else 400
        return DirectResponse(success=False, message=result.message, error=result.error_kind.value)

    if result.outcome == IngestOutcome.DEGRADED:
        response.status_code = 500
        return DirectResponse(success=False, message="Internal server error", error=result.error_kind.value)

    return DirectResponse(
        success=True,
        pothole_id=result.incident.id,
        message="Device data received and processed successfully",
    )


@router.get("", response_model=EndpointStatus)
async def direct_status() -> EndpointStatus:
    """Connection test for devices."""
    return EndpointStatus(status="online", message="Direct ingestion endpoint is working", timestamp=utc_now())
