"""
Personnel tracking endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from rockguard.api.deps import get_service
from rockguard.core.errors import UnknownWorker
from rockguard.personnel.models import Position, RiskTier, Vitals
from rockguard.services.monitoring_service import MonitoringService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/personnel", tags=["Personnel"])


# =============================================================================
# Request Models
# =============================================================================


class WorkerReport(BaseModel):
    """Position and/or vitals report from an external tracker."""

    x: Optional[float] = Field(None, ge=0, le=100, description="Site-map x (0-100)")
    y: Optional[float] = Field(None, ge=0, le=100, description="Site-map y (0-100)")
    heart_rate_bpm: Optional[float] = Field(None, gt=0, le=300)
    sos: Optional[bool] = Field(None, description="SOS button state")


class WorkerRegistration(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    x: float = Field(..., ge=0, le=100)
    y: float = Field(..., ge=0, le=100)
    name: Optional[str] = None
    phone: Optional[str] = None
    heart_rate_bpm: Optional[float] = Field(None, gt=0, le=300)


# =============================================================================
# Endpoints
# =============================================================================


@router.get("")
async def list_workers(
    only: Optional[RiskTier] = Query(None, description="Only workers in this tier"),
    service: MonitoringService = Depends(get_service),
):
    """Workers ordered EMERGENCY > CAUTION > SAFE, then by risk score."""
    classifier = service.classifier
    return {
        "workers": [
            w.to_dict(classifier.stale_after_seconds) for w in classifier.list_workers(only)
        ]
    }


@router.get("/live")
async def live_personnel(
    only: Optional[RiskTier] = Query(None),
    service: MonitoringService = Depends(get_service),
):
    """Workers, per-tier totals and last update time."""
    return service.classifier.live(only)


@router.get("/trend")
async def personnel_trend(service: MonitoringService = Depends(get_service)):
    """Tier counts over the last cycles, oldest first."""
    return {"points": service.classifier.trend()}


@router.post("", status_code=201)
async def register_worker(
    body: WorkerRegistration,
    service: MonitoringService = Depends(get_service),
):
    """Register (or re-register) a tracked worker."""
    worker = service.classifier.register(
        body.id,
        position=Position(body.x, body.y),
        name=body.name,
        phone=body.phone,
        vitals=Vitals(heart_rate_bpm=body.heart_rate_bpm),
    )
    return worker.to_dict(service.classifier.stale_after_seconds)


@router.put("/{worker_id}")
async def update_worker(
    worker_id: str,
    report: WorkerReport,
    service: MonitoringService = Depends(get_service),
):
    """Apply a position/vitals report and return the re-classified worker."""
    if (report.x is None) != (report.y is None):
        raise HTTPException(status_code=422, detail="x and y must be given together")

    classifier = service.classifier
    try:
        current = classifier.get(worker_id)
        position = Position(report.x, report.y) if report.x is not None else None
        vitals = None
        if report.heart_rate_bpm is not None or report.sos is not None:
            vitals = Vitals(
                heart_rate_bpm=(
                    report.heart_rate_bpm
                    if report.heart_rate_bpm is not None
                    else current.vitals.heart_rate_bpm
                ),
                sos=report.sos if report.sos is not None else current.vitals.sos,
            )
        worker = classifier.update(worker_id, position=position, vitals=vitals)
    except UnknownWorker as e:
        raise HTTPException(status_code=404, detail=str(e))
    return worker.to_dict(classifier.stale_after_seconds)
