"""
SQLAlchemy database models for the work-package job store.

Only the columns the extraction pipeline reads or writes are modelled here;
the rest of the job aggregate belongs to the job service that owns the table.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class JobModel(Base):
    """
    SQLAlchemy model for work-order jobs.
    
    The ai_* columns carry the extraction state machine:
    NotStarted (no started/complete), Started (started set, not complete),
    Complete (complete set; ai_extraction_error distinguishes failure).
    """
    __tablename__ = "jobs"
    
    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True
    )
    title: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True
    )
    source_pdf_path: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True
    )
    # Document tree: [{"name": ..., "documents": [...], "subfolders": [...]}]
    folders: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        default=list
    )
    
    # Extraction state
    ai_extraction_started: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )
    ai_extraction_ended: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    ai_processing_time_ms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )
    ai_extraction_complete: Mapped[bool] = mapped_column(
        default=False
    )
    ai_extraction_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )
    ai_extracted_assets: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        default=list
    )
    construction_sketches: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        default=list
    )
    
    # Optimistic concurrency: a concurrent write makes flush raise StaleDataError
    version_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1
    )
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utc_now,
        onupdate=_utc_now
    )
    
    __mapper_args__ = {"version_id_col": version_id}
