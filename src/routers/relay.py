import logging

from fastapi import APIRouter, Request, Response

from core.models.telemetry import utc_now
from core.services.ingestion_router import IngestOutcome, ingestion_router
from schemas import EndpointStatus, RelayResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/relay", tags=["ingestion"])


@router.post("", response_model=RelayResponse, response_model_exclude_none=True, responses={
    400: {
        "description": "Missing body or malformed ROADPULSE payload.",
        "content": {
            "application/json": {
                "example": {"status": "error", "message": "Invalid SMS format", "error": "bad_prefix"}
            }
        }
    }
})
async def ingest_relay_message(request: Request, response: Response) -> RelayResponse:
    """
    Webhook for the text-message relay. Expects a form-encoded body with a `Body` field:

    `ROADPULSE|DEV:<id>|LAT:<f>|LNG:<f>|INT:<f>|TIME:<i>|SATS:<i>|TYPE:<POTHOLE|HEARTBEAT>`

    The relay never retries, so a storage failure is still acknowledged with
    status `warning` (HTTP 200) and logged for operators.
    """
    form = await request.form()
    logger.info(f"🔔 Relay webhook from {form.get('From', 'unknown sender')}")
    result = await ingestion_router.ingest_via_relay(form)

    if result.outcome == IngestOutcome.REJECTED:
        response.status_code = 400
        return RelayResponse(
            status="error",
            message=result.message,
            device_id=result.device_id,
            error=result.error_kind.value if result.error_kind else None,
        )

    if result.outcome == IngestOutcome.DEGRADED:
        return RelayResponse(
            status="warning",
            message=result.message,
            device_id=result.device_id,
            intensity=result.intensity,
            error="Database storage failed",
        )

    return RelayResponse(
        status="success",
        message=result.message,
        device_id=result.device_id,
        intensity=result.intensity,
    )


@router.get("", response_model=EndpointStatus)
async def relay_status() -> EndpointStatus:
    """Lets the relay provider verify the webhook is reachable."""
    return EndpointStatus(status="online", message="RoadPulse relay webhook is running", timestamp=utc_now())
