"""
Health Check Endpoint

GET /api/v1/health - liveness plus the loaded PDF backend
"""
import logging

from fastapi import APIRouter

from workpack.core.config import settings
from workpack.models.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    from workpack.engine.pdf_backend import get_raster_backend
    
    backend = get_raster_backend()
    return HealthResponse(
        status="ok" if backend.is_available() else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        pdf_backend=backend.name,
    )
