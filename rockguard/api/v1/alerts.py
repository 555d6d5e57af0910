"""
Alert log and alert condition endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from rockguard.api.deps import get_service
from rockguard.api.v1.telemetry import SSE_HEADERS
from rockguard.core.errors import InvalidAlertTransition, UnknownAlertCondition
from rockguard.core.event_bus import sse_stream
from rockguard.notifications.alerts import (
    ALERTS_CHANNEL,
    AlertLevel,
    AlertSource,
    AlertStatus,
)
from rockguard.services.monitoring_service import MonitoringService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["Alerts"])


# =============================================================================
# Alert Log
# =============================================================================


@router.get("")
async def list_alerts(
    level: Optional[AlertLevel] = Query(None, description="Filter by level"),
    status: Optional[AlertStatus] = Query(None, description="Filter by record status"),
    source: Optional[AlertSource] = Query(None, description="Filter by source"),
    limit: int = Query(100, ge=1, le=1000),
    service: MonitoringService = Depends(get_service),
):
    """Alert records, newest first."""
    records = service.alerts.list_alerts(level=level, status=status, source=source, limit=limit)
    return {
        "total": len(records),
        "alerts": [record.to_dict() for record in records],
    }


@router.post("/test", status_code=201)
async def create_test_alert(
    level: AlertLevel = Query(AlertLevel.HIGH, description="Level of the synthetic alert"),
    service: MonitoringService = Depends(get_service),
):
    """Append a synthetic manual-test alert."""
    record = service.alerts.test_alert(level)
    return record.to_dict()


@router.delete("")
async def clear_alerts(service: MonitoringService = Depends(get_service)):
    """
    Clear the alert log.

    History is not rewritten: a tombstone record is appended and earlier
    records drop out of the listing.
    """
    tombstone = service.alerts.clear()
    return {"cleared": True, "tombstone": tombstone.to_dict()}


@router.get("/stream")
async def stream_alerts(service: MonitoringService = Depends(get_service)):
    """
    SSE stream of new alert records.

    Usage:
        const es = new EventSource('/api/v1/alerts/stream');
        es.addEventListener('alert', e => { ... });
    """
    subscription = service.bus.subscribe(
        ALERTS_CHANNEL, max_queue_size=service.settings.subscriber_queue_depth
    )
    return StreamingResponse(
        sse_stream(subscription),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# =============================================================================
# Conditions
# =============================================================================


@router.get("/conditions")
async def list_conditions(service: MonitoringService = Depends(get_service)):
    """Every tracked alert condition and its state."""
    return {"conditions": [c.to_dict() for c in service.alerts.conditions()]}


@router.post("/conditions/{key}/acknowledge")
async def acknowledge_condition(key: str, service: MonitoringService = Depends(get_service)):
    """Acknowledge a RAISED condition."""
    try:
        record = service.alerts.acknowledge(key)
    except UnknownAlertCondition as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidAlertTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return record.to_dict()


@router.post("/conditions/{key}/resolve")
async def resolve_condition(key: str, service: MonitoringService = Depends(get_service)):
    """Resolve a RAISED or ACKNOWLEDGED condition."""
    try:
        record = service.alerts.resolve(key)
    except UnknownAlertCondition as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidAlertTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return record.to_dict()
