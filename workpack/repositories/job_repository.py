"""
Job Repository - narrow job-store interface for asset extraction.

The extraction pipeline only reads a job's source PDF and writes its
extraction-state fields, asset list and document-tree entries. Everything
else about jobs belongs to the service that owns the table.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from workpack.models.database import JobModel
from workpack.models.extraction import CleanedPackage, ExtractionState, PageCategory, RasterAsset

logger = logging.getLogger(__name__)

# Sub-folder of the asset folder path receiving each category
CATEGORY_FOLDERS = {
    PageCategory.PHOTO: "Job Photos",
    PageCategory.DRAWING: "Construction Sketches",
    PageCategory.MAP: "Circuit Maps",
}

# Document type recorded in the tree per category
CATEGORY_DOCUMENT_TYPES = {
    PageCategory.PHOTO: "image",
    PageCategory.DRAWING: "drawing",
    PageCategory.MAP: "map",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """Job data class (extraction view)."""
    id: str
    title: Optional[str]
    source_pdf_path: Optional[str]
    state: ExtractionState
    folders: List[Dict[str, Any]] = field(default_factory=list)
    extracted_assets: List[Dict[str, Any]] = field(default_factory=list)
    construction_sketches: List[Dict[str, Any]] = field(default_factory=list)


def _state_from_model(model: JobModel) -> ExtractionState:
    return ExtractionState(
        started_at=model.ai_extraction_started,
        ended_at=model.ai_extraction_ended,
        processing_time_ms=model.ai_processing_time_ms,
        complete=bool(model.ai_extraction_complete),
        error=model.ai_extraction_error,
    )


def _job_from_model(model: JobModel) -> Job:
    return Job(
        id=model.id,
        title=model.title,
        source_pdf_path=model.source_pdf_path,
        state=_state_from_model(model),
        folders=copy.deepcopy(model.folders or []),
        extracted_assets=list(model.ai_extracted_assets or []),
        construction_sketches=list(model.construction_sketches or []),
    )


def ensure_folder_path(folders: List[Dict[str, Any]], path: Sequence[str]) -> Dict[str, Any]:
    """
    Walk (and create where missing) a folder path in a document tree.
    
    Args:
        folders: Top-level folder list, modified in place
        path: Folder names from the top level down
    
    Returns:
        The innermost folder dict
    """
    if not path:
        raise ValueError("Folder path must not be empty")
    
    level = folders
    folder: Dict[str, Any] = {}
    for name in path:
        folder = next((f for f in level if f.get("name") == name), None)
        if folder is None:
            folder = {"name": name, "documents": [], "subfolders": []}
            level.append(folder)
        folder.setdefault("documents", [])
        folder.setdefault("subfolders", [])
        level = folder["subfolders"]
    return folder


def build_asset_document(asset: RasterAsset, source_name: str, uploaded_at: datetime) -> Dict[str, Any]:
    """Document-tree entry for one extracted asset."""
    document = {
        "name": asset.name,
        "url": asset.url,
        "type": CATEGORY_DOCUMENT_TYPES[asset.category],
        "page_number": asset.page_number,
        "extracted_from": source_name,
        "upload_date": uploaded_at.isoformat(),
        "is_ai_extracted": True,
    }
    if asset.storage_key:
        document["storage_key"] = asset.storage_key
    if asset.path:
        document["path"] = asset.path
    return document


def attach_assets(
    folders: List[Dict[str, Any]],
    assets: Sequence[RasterAsset],
    source_name: str,
    folder_path: Sequence[str],
    uploaded_at: datetime,
) -> List[Dict[str, Any]]:
    """
    Add asset documents under ``folder_path`` / <category folder>.
    
    Returns:
        A new folder tree; the input is left untouched
    """
    tree = copy.deepcopy(folders or [])
    if not assets:
        return tree
    
    parent = ensure_folder_path(tree, folder_path)
    for asset in assets:
        target = ensure_folder_path(parent["subfolders"], [CATEGORY_FOLDERS[asset.category]])
        target["documents"].append(build_asset_document(asset, source_name, uploaded_at))
    return tree


def attach_cleaned_package(
    folders: List[Dict[str, Any]],
    package: CleanedPackage,
    folder_path: Sequence[str],
    source_name: str,
    cleaned_at: datetime,
) -> List[Dict[str, Any]]:
    """
    Point the job package document at its cleaned copy.
    
    The document is the one named ``source_name`` or containing "job package",
    else the first document of the folder. An empty folder gets a new entry.
    
    Returns:
        A new folder tree; the input is left untouched
    """
    tree = copy.deepcopy(folders or [])
    folder = ensure_folder_path(tree, folder_path)
    documents = folder["documents"]
    
    document = next(
        (
            d for d in documents
            if d.get("name") == source_name or "job package" in str(d.get("name", "")).lower()
        ),
        documents[0] if documents else None,
    )
    if document is None:
        document = {"upload_date": cleaned_at.isoformat()}
        documents.append(document)
    
    document["name"] = package.name
    document["url"] = package.url
    document["type"] = "pdf"
    document["photo_pages_removed"] = len(package.pages_removed)
    document["cleaned_at"] = cleaned_at.isoformat()
    if package.storage_key:
        document["storage_key"] = package.storage_key
    if package.path:
        document["path"] = package.path
    else:
        document.pop("path", None)
    return tree


class JobRepository:
    """
    Repository for the extraction fields of the ``jobs`` table.
    
    State writes raise on database errors; the orchestrator decides what a
    failed write means for the run.
    """
    
    MAX_SAVE_RETRIES = 3
    
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """Initialize repository, using the SHARED session factory by default."""
        if session_factory is None:
            from workpack.core.database import get_shared_session_factory
            session_factory = get_shared_session_factory()
        self._session_factory = session_factory
    
    # =========================================================================
    # READS
    # =========================================================================
    
    def get_job(self, job_id: str) -> Optional[Job]:
        with self._session_factory() as session:
            model = session.get(JobModel, job_id)
            return _job_from_model(model) if model else None
    
    def get_extraction_state(self, job_id: str) -> Optional[ExtractionState]:
        with self._session_factory() as session:
            model = session.get(JobModel, job_id)
            return _state_from_model(model) if model else None
    
    # =========================================================================
    # WRITES
    # =========================================================================
    
    def create_job(
        self,
        job_id: str,
        title: Optional[str] = None,
        source_pdf_path: Optional[str] = None,
        folders: Optional[List[Dict[str, Any]]] = None,
    ) -> Job:
        with self._session_factory() as session:
            model = JobModel(
                id=job_id,
                title=title,
                source_pdf_path=source_pdf_path,
                folders=folders or [],
                ai_extraction_complete=False,
                ai_extracted_assets=[],
                construction_sketches=[],
            )
            session.add(model)
            session.commit()
            logger.info(f"Created job {job_id}")
            return _job_from_model(model)
    
    def set_source_pdf(self, job_id: str, source_pdf_path: str) -> bool:
        with self._session_factory() as session:
            model = session.get(JobModel, job_id)
            if model is None:
                return False
            model.source_pdf_path = source_pdf_path
            session.commit()
            return True
    
    def mark_extraction_started(self, job_id: str, started_at: Optional[datetime] = None) -> datetime:
        """
        Record Started (the soft lock) before any page work.
        
        Returns:
            The recorded start timestamp
        
        Raises:
            LookupError: Unknown job
        """
        started_at = started_at or _utc_now()
        with self._session_factory() as session:
            model = self._require(session, job_id)
            model.ai_extraction_started = started_at
            model.ai_extraction_ended = None
            model.ai_processing_time_ms = None
            model.ai_extraction_complete = False
            model.ai_extraction_error = None
            session.commit()
        logger.info(f"Job {job_id}: extraction started")
        return started_at
    
    def mark_extraction_succeeded(
        self,
        job_id: str,
        assets: Sequence[RasterAsset],
        source_name: str,
        folder_path: Sequence[str],
        processing_time_ms: int,
        ended_at: Optional[datetime] = None,
    ) -> None:
        """
        Write assets and the Complete(success) state.
        
        Asset documents are merged into the folder tree; a concurrent write to
        the job (StaleDataError) or a transient database error is retried. If
        every attempt fails, only the state fields and asset lists are written
        with a single UPDATE.
        """
        ended_at = ended_at or _utc_now()
        asset_entries = [
            {**asset.to_entry(), "extracted_at": ended_at.isoformat()}
            for asset in assets
        ]
        sketches = [
            {
                "page_number": asset.page_number,
                "url": asset.url,
                "storage_key": asset.storage_key,
                "name": asset.name,
                "extracted_from": source_name,
                "extracted_at": ended_at.isoformat(),
            }
            for asset in assets
            if asset.category == PageCategory.DRAWING
        ]
        
        for attempt in range(self.MAX_SAVE_RETRIES):
            try:
                with self._session_factory() as session:
                    model = self._require(session, job_id)
                    model.folders = attach_assets(model.folders, assets, source_name, folder_path, ended_at)
                    model.ai_extracted_assets = asset_entries
                    if sketches:
                        model.construction_sketches = sketches
                    model.ai_extraction_complete = True
                    model.ai_extraction_ended = ended_at
                    model.ai_processing_time_ms = processing_time_ms
                    model.ai_extraction_error = None
                    session.commit()
                logger.info(f"Job {job_id}: extraction saved ({len(asset_entries)} assets)")
                return
            except (StaleDataError, OperationalError) as e:
                logger.warning(
                    f"Job {job_id}: save attempt {attempt + 1}/{self.MAX_SAVE_RETRIES} failed: {e}"
                )
        
        logger.warning(f"Job {job_id}: falling back to atomic state update")
        values: Dict[str, Any] = {
            "ai_extraction_complete": True,
            "ai_extraction_ended": ended_at,
            "ai_processing_time_ms": processing_time_ms,
            "ai_extraction_error": None,
            "ai_extracted_assets": asset_entries,
        }
        if sketches:
            values["construction_sketches"] = sketches
        self._update_fields(job_id, values)
    
    def record_cleaned_package(
        self,
        job_id: str,
        package: CleanedPackage,
        folder_path: Sequence[str],
        source_name: str,
        cleaned_at: Optional[datetime] = None,
    ) -> None:
        """
        Record the cleaned job package in the document tree.
        
        Retried like the success write; there is no fallback, the caller
        treats a failure here as non-fatal.
        
        Raises:
            LookupError: Unknown job
            StaleDataError: Every attempt lost to a concurrent write
        """
        cleaned_at = cleaned_at or _utc_now()
        for attempt in range(self.MAX_SAVE_RETRIES):
            try:
                with self._session_factory() as session:
                    model = self._require(session, job_id)
                    model.folders = attach_cleaned_package(
                        model.folders, package, folder_path, source_name, cleaned_at
                    )
                    session.commit()
                logger.info(
                    f"Job {job_id}: job package replaced by {package.name} "
                    f"({len(package.pages_removed)} photo pages removed)"
                )
                return
            except (StaleDataError, OperationalError) as e:
                logger.warning(
                    f"Job {job_id}: package save attempt {attempt + 1}/{self.MAX_SAVE_RETRIES} failed: {e}"
                )
                if attempt == self.MAX_SAVE_RETRIES - 1:
                    raise
    
    def mark_extraction_failed(
        self,
        job_id: str,
        error: str,
        processing_time_ms: Optional[int] = None,
        ended_at: Optional[datetime] = None,
    ) -> None:
        """Record Complete(failed)."""
        self._update_fields(job_id, {
            "ai_extraction_complete": True,
            "ai_extraction_ended": ended_at or _utc_now(),
            "ai_processing_time_ms": processing_time_ms,
            "ai_extraction_error": error or "Extraction failed",
        })
        logger.info(f"Job {job_id}: extraction failed: {error}")
    
    def mark_extraction_skipped(self, job_id: str, ended_at: Optional[datetime] = None) -> None:
        """
        Record an empty Complete(success) without a start timestamp.
        
        Used when no PDF backend is available on this host.
        """
        self._update_fields(job_id, {
            "ai_extraction_complete": True,
            "ai_extraction_ended": ended_at or _utc_now(),
            "ai_processing_time_ms": 0,
            "ai_extraction_error": None,
            "ai_extracted_assets": [],
        })
        logger.info(f"Job {job_id}: extraction skipped (no PDF backend)")
    
    def reset_stale_extractions(self, cutoff: datetime) -> int:
        """
        Return crashed runs to NotStarted.
        
        Args:
            cutoff: Runs started before this instant and not complete are reset
        
        Returns:
            Number of jobs reset
        """
        stmt = (
            update(JobModel)
            .where(JobModel.ai_extraction_started.is_not(None))
            .where(JobModel.ai_extraction_started < cutoff)
            .where(or_(
                JobModel.ai_extraction_complete.is_(False),
                JobModel.ai_extraction_complete.is_(None),
            ))
            .values(
                ai_extraction_started=None,
                ai_extraction_ended=None,
                ai_processing_time_ms=None,
                ai_extraction_complete=False,
                ai_extraction_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount or 0
    
    # =========================================================================
    # HELPERS
    # =========================================================================
    
    @staticmethod
    def _require(session: Session, job_id: str) -> JobModel:
        model = session.get(JobModel, job_id)
        if model is None:
            raise LookupError(f"Job {job_id} not found")
        return model
    
    def _update_fields(self, job_id: str, values: Dict[str, Any]) -> None:
        stmt = (
            update(JobModel)
            .where(JobModel.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            if not result.rowcount:
                raise LookupError(f"Job {job_id} not found")


# Singleton instance
_job_repository: Optional[JobRepository] = None


def get_job_repository() -> JobRepository:
    """Get or create singleton JobRepository instance"""
    global _job_repository
    if _job_repository is None:
        _job_repository = JobRepository()
    return _job_repository
