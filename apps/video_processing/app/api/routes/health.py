from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...domain.health import HealthResponse, OverallStatus
from ...services.health import HealthService
from ..dependencies import get_health_service

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health(service: HealthService = Depends(get_health_service)) -> JSONResponse:
    """Report dependency checks; 503 only when every check fails.

    The metadata store check is keyed ``metadataStore``. Consumers of the
    earlier ``firestore`` key must switch to it: the store is now SQL-backed.
    """

    report = await service.build_response()
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if report.status is OverallStatus.UNHEALTHY
        else status.HTTP_200_OK
    )
    return JSONResponse(
        content=report.model_dump(mode="json", by_alias=True, exclude_none=True),
        status_code=status_code,
    )
