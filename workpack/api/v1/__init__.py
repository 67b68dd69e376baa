"""
API Version 1 Router
Aggregates all v1 endpoints
"""
from fastapi import APIRouter

from workpack.api.v1.health import router as health_router
from workpack.api.v1.jobs import router as jobs_router

router = APIRouter(tags=["v1"])

# Include sub-routers
router.include_router(health_router)
router.include_router(jobs_router)  # POST /jobs/{job_id}/extractions
