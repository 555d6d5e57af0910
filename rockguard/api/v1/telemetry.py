"""
Telemetry endpoints.

GET /api/v1/telemetry           - pull: current snapshot + risk for a location
GET /api/v1/telemetry/history   - trend points (bounded history ring)
GET /api/v1/telemetry/stream    - SSE push stream
WS  /api/v1/telemetry/ws        - WebSocket push stream

Clients prefer the push streams and fall back to polling the pull endpoint.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from rockguard.api.deps import get_service
from rockguard.core.errors import InvalidLocation
from rockguard.core.event_bus import Subscription, sse_stream, to_jsonable
from rockguard.services.monitoring_service import MonitoringService
from rockguard.telemetry.models import Location

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telemetry", tags=["Telemetry"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


def _parse_location(lat: float, lon: float) -> Location:
    try:
        return Location.parse(lat, lon)
    except InvalidLocation as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("")
async def get_telemetry(
    lat: float = Query(..., description="Latitude (-90..90)"),
    lon: float = Query(..., description="Longitude (-180..180)"),
    service: MonitoringService = Depends(get_service),
):
    """
    Current telemetry and risk for a location.

    Never older than the last push for the same location.
    """
    location = _parse_location(lat, lon)
    update = await service.hub.snapshot(location)
    return update.to_dict()


@router.get("/history")
async def get_telemetry_history(
    lat: float = Query(...),
    lon: float = Query(...),
    service: MonitoringService = Depends(get_service),
):
    """Trend points, oldest first."""
    location = _parse_location(lat, lon)
    return {
        "location": location.to_dict(),
        "points": service.hub.history(location),
    }


@router.get("/stream")
async def stream_telemetry(
    lat: float = Query(...),
    lon: float = Query(...),
    service: MonitoringService = Depends(get_service),
):
    """
    SSE stream of telemetry updates for a location.

    Usage:
        const es = new EventSource('/api/v1/telemetry/stream?lat=28.61&lon=77.21');
        es.addEventListener('telemetry', e => { ... });
    """
    location = _parse_location(lat, lon)
    subscription = await service.hub.subscribe(location)
    return StreamingResponse(
        sse_stream(subscription),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def _close_on_disconnect(websocket: WebSocket, subscription: Subscription) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()


@router.websocket("/ws")
async def telemetry_websocket(websocket: WebSocket, lat: float, lon: float):
    """WebSocket stream; each message is {"type": "telemetry", "data": {...}}."""
    service: MonitoringService = getattr(websocket.app.state, "service", None)
    try:
        location = Location.parse(lat, lon)
    except InvalidLocation as e:
        await websocket.close(code=1008, reason=str(e))
        return
    if service is None:
        await websocket.close(code=1011, reason="Service is not running")
        return

    await websocket.accept()
    subscription = await service.hub.subscribe(location)
    watcher = asyncio.create_task(_close_on_disconnect(websocket, subscription))
    try:
        async for event in subscription:
            await websocket.send_json({"type": event.type, "data": to_jsonable(event.data)})
    except WebSocketDisconnect:
        logger.info(f"WebSocket client left {location.key}")
    finally:
        subscription.close()
        watcher.cancel()
