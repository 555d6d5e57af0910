"""
Shared FastAPI dependencies.
"""
from fastapi import HTTPException, Request

from rockguard.services.monitoring_service import MonitoringService


def get_service(request: Request) -> MonitoringService:
    """
    The MonitoringService built at startup.

    Usage:
        @router.get("/endpoint")
        async def endpoint(service: MonitoringService = Depends(get_service)):
            ...
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service is not running")
    return service
