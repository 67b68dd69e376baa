"""
Pydantic schemas for the HTTP surface.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Extraction Schemas
# =============================================================================

class PackagePreviewSchema(BaseModel):
    """Bounded text preview of an uploaded package"""
    text: str = Field(..., description="First-page text or the uploaded filename")
    source: str = Field(..., description="first_page | filename | empty")


class ExtractionAcceptedResponse(BaseModel):
    """Acknowledgement returned before extraction runs"""
    job_id: str = Field(..., description="Job the package belongs to")
    status: str = Field(default="accepted", description="Always 'accepted'")
    preview: PackagePreviewSchema = Field(..., description="Package preview")
    
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "job_id": "35440499",
                    "status": "accepted",
                    "preview": {"text": "face sheet pm# 35440499 ...", "source": "first_page"},
                }
            ]
        }
    }


class ExtractionStatusResponse(BaseModel):
    """Extraction state of a job"""
    job_id: str
    status: str = Field(..., description="not_started | started | succeeded | failed")
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    processing_time_ms: Optional[int] = None
    error: Optional[str] = None
    assets: list[dict[str, Any]] = Field(default_factory=list, description="Extracted asset entries")


# =============================================================================
# Health / Error Schemas
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Overall system status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    pdf_backend: str = Field(..., description="Loaded PDF backend name")
    timestamp: datetime = Field(default_factory=utc_now, description="Check timestamp")


class ErrorDetail(BaseModel):
    """Detail of a validation or processing error"""
    field: Optional[str] = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")
    code: Optional[str] = Field(default=None, description="Error code")


class ErrorResponse(BaseModel):
    """Standard error response format"""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[list[ErrorDetail]] = Field(default=None, description="Error details")
    request_id: Optional[str] = Field(default=None, description="Request ID for tracking")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")
