"""
Work Package Asset Extraction Service - FastAPI Application Entry Point

Accepts utility work-order packages, classifies their pages and publishes
drawings, maps and photos as standalone images.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from workpack.core.config import settings
from workpack.models.schemas import ErrorDetail, ErrorResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def run_startup_sweep() -> int:
    """
    Reset extractions left Started by a previous process.
    
    Errors are logged; startup continues.
    """
    try:
        from workpack.repositories.job_repository import get_job_repository
        from workpack.services.crash_recovery import run_crash_recovery_sweep
        
        return run_crash_recovery_sweep(
            get_job_repository(),
            stale_after_minutes=settings.stale_extraction_minutes,
        )
    except Exception as e:
        logger.warning(f"⚠️ Crash-recovery sweep failed: {e} (service will continue)")
        return 0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    
    - Startup: load the PDF backend once, run the crash-recovery sweep once
    - Shutdown: close the shared database engine
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")
    
    from workpack.engine.pdf_backend import get_raster_backend
    backend = get_raster_backend()
    if backend.is_available():
        logger.info(f"✅ PDF backend: {backend.name}")
    else:
        logger.warning("⚠️ PDF backend unavailable: extraction runs will complete empty")
    
    from workpack.core.database import test_connection
    if test_connection():
        logger.info("✅ Job store connection OK")
    else:
        logger.warning("⚠️ Job store unreachable: extraction state cannot be recorded")
    
    run_startup_sweep()
    
    logger.info(f"🚀 {settings.app_name} started successfully")
    
    yield
    
    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    try:
        from workpack.core.database import close_shared_engine
        close_shared_engine()
        logger.info("✅ Shared database engine closed successfully")
    except Exception as e:
        logger.error(f"❌ Failed to close shared database engine: {e}")
    
    logger.info(f"👋 {settings.app_name} shutdown complete")


def create_application() -> FastAPI:
    """
    Application factory pattern.
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Work-package PDF asset extraction: drawings, maps and field photos",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    
    # Register exception handlers
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
    
    # Include API routers
    from workpack.api.v1 import router as api_v1_router
    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)
    
    # Assets kept on local disk when object storage is unavailable
    app.mount(
        settings.local_asset_url_prefix,
        StaticFiles(directory=settings.uploads_dir, check_dir=False),
        name="uploads",
    )
    
    return app


# =============================================================================
# Exception Handlers
# =============================================================================

async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.
    Returns HTTP 400 with detailed error information.
    """
    errors = []
    for error in exc.errors():
        errors.append(
            ErrorDetail(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
                code=error["type"],
            )
        )
    
    response = ErrorResponse(
        error="validation_error",
        message="Request validation failed",
        details=errors,
        request_id=request.headers.get("X-Request-ID"),
    )
    
    logger.warning(f"Validation error: {response.model_dump_json()}")
    
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=response.model_dump(mode="json"),
    )


async def general_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.
    Returns HTTP 500 with error details while maintaining service availability.
    """
    logger.exception(f"Unexpected error: {exc}")
    
    response = ErrorResponse(
        error="internal_error",
        message="An unexpected error occurred" if not settings.debug else str(exc),
        request_id=request.headers.get("X-Request-ID"),
    )
    
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# Create application instance
app = create_application()


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """Root endpoint - service information"""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
