from fastapi import APIRouter, HTTPException

from core.errors import LivenessUpdateError
from core.liveness_tracker import DeviceLivenessState, liveness_tracker
from schemas import DeviceAction, DeviceActionResponse, DeviceList, DeviceStatus

VALID_ACTIONS = ("heartbeat", "online", "offline")

router = APIRouter(prefix="/devices", tags=["liveness"])


def _to_status(state: DeviceLivenessState) -> DeviceStatus:
    return DeviceStatus(device_id=state.device_id, last_seen=state.last_seen, online=state.online)


@router.get("", response_model=DeviceList)
async def list_devices() -> DeviceList:
    """All tracked devices with their last-seen time and online flag."""
    states = sorted(liveness_tracker.snapshot(), key=lambda s: s.device_id)
    return DeviceList(devices=[_to_status(s) for s in states])


@router.get("/{device_id}", response_model=DeviceStatus)
async def get_device(device_id: str) -> DeviceStatus:
    """
    Liveness of one device. Devices never heard from are reported
    with `lastSeen: null` and `online: false`.
    """
    state = liveness_tracker.get(device_id)
    if state is None:
        return DeviceStatus(device_id=device_id, last_seen=None, online=False)
    return _to_status(state)


@router.post("", response_model=DeviceActionResponse, responses={
    400: {
        "description": "deviceId missing or action not one of heartbeat, online, offline.",
        "content": {
            "application/json": {
                "examples": {
                    "missing_device": {"value": {"detail": "deviceId is required"}},
                    "invalid_action": {"value": {"detail": "Invalid action: reboot. Valid values are: heartbeat, online, offline"}}
                }
            }
        }
    },
    503: {
        "description": "The device's liveness entry is busy.",
        "content": {"application/json": {"example": {"detail": "Timed out waiting for liveness lock of ESP32-BUS-001"}}}
    }
})
async def update_device(body: DeviceAction) -> DeviceActionResponse:
    """
    Mutate tracker state:
    - **heartbeat**: lastSeen = now, online = true
    - **online** / **offline**: override the online flag only
    """
    if not body.device_id:
        raise HTTPException(status_code=400, detail="deviceId is required")
    if body.action not in VALID_ACTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid action: {body.action}. Valid values are: {', '.join(VALID_ACTIONS)}"
        )

    try:
        if body.action == "heartbeat":
            state = liveness_tracker.heartbeat(body.device_id)
        else:
            state = liveness_tracker.set_online(body.device_id, body.action == "online")
    except LivenessUpdateError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return DeviceActionResponse(success=True, device_id=body.device_id, status=_to_status(state))
