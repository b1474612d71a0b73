import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Optional

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from core.event_hub import DEVICE_STATUS, INCIDENT_CREATED, EventHub, event_hub
from core.models.telemetry import utc_now

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 30.0
QUEUE_SIZE = 256

EVENT_TYPES = {
    INCIDENT_CREATED: "incident",
    DEVICE_STATUS: "device_status",
}

router = APIRouter(prefix="/live", tags=["live"])


def _frame(payload: dict) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


async def live_events(hub: EventHub = event_hub,
                      keepalive: float = KEEPALIVE_SECONDS) -> AsyncGenerator[bytes, None]:
    """Server-sent events for new incidents and device status changes.

    Emits a ``connected`` frame first and a ``heartbeat`` frame whenever the
    stream has been quiet for ``keepalive`` seconds.
    """
    queue: "asyncio.Queue[Optional[dict]]" = asyncio.Queue(maxsize=QUEUE_SIZE)

    def on_event(topic: str, message: Any):
        try:
            queue.put_nowait({"type": EVENT_TYPES[topic], "data": message})
        except asyncio.QueueFull:
            logger.warning(f"Live stream queue full, dropping {topic} event")

    for topic in EVENT_TYPES:
        hub.subscribe(topic, on_event)
    try:
        yield _frame({"type": "connected", "timestamp": utc_now().isoformat()})
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                event = {"type": "heartbeat", "timestamp": utc_now().isoformat()}
            yield _frame(event)
    finally:
        for topic in EVENT_TYPES:
            hub.unsubscribe(topic, on_event)


@router.get("")
async def stream_live_events() -> StreamingResponse:
    """Push channel on top of the polling API (`text/event-stream`)."""
    return StreamingResponse(
        live_events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
