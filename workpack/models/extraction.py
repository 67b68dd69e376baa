"""
Domain types for work-package asset extraction.

Values flow Loader -> Analyzer -> Classifier -> Rasterizer -> Uploader ->
job store; each stage produces one of the types below.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class PageCategory(str, Enum):
    """Semantic category of a package page."""
    DRAWING = "drawing"
    MAP = "map"
    PHOTO = "photo"
    FORM = "form"
    UNCLASSIFIED = "unclassified"
    
    @property
    def folder(self) -> str:
        """Asset folder name, e.g. uploads/job_<id>/photos/"""
        return f"{self.value}s"


@dataclass(frozen=True)
class PageSignature:
    """
    Per-page facts used as classifier input.
    
    Attributes:
        page_number: 1-indexed page number
        text_lower: all text runs of the page, joined and lowercased
        text_length: length of the joined text
        image_op_count: number of image-paint operators on the page
    """
    page_number: int
    text_lower: str
    text_length: int
    image_op_count: int
    
    @property
    def has_images(self) -> bool:
        return self.image_op_count > 0


@dataclass
class ClassificationResult:
    """
    Page numbers per category for one document.
    
    Lists are sorted ascending, contain no duplicates and are pairwise disjoint.
    """
    drawings: List[int] = field(default_factory=list)
    maps: List[int] = field(default_factory=list)
    photos: List[int] = field(default_factory=list)
    forms: List[int] = field(default_factory=list)
    total_pages: int = 0
    
    def pages_for(self, category: PageCategory) -> List[int]:
        """Get the page list for a category (empty for UNCLASSIFIED)."""
        return {
            PageCategory.DRAWING: self.drawings,
            PageCategory.MAP: self.maps,
            PageCategory.PHOTO: self.photos,
            PageCategory.FORM: self.forms,
        }.get(category, [])
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "drawings": list(self.drawings),
            "maps": list(self.maps),
            "photos": list(self.photos),
            "forms": list(self.forms),
            "totalPages": self.total_pages,
        }


@dataclass
class RasterImage:
    """An encoded raster of one page."""
    page_number: int
    width: int
    height: int
    data: bytes
    format: str = "JPEG"


@dataclass
class AssetReference:
    """Where an uploaded asset can be fetched from."""
    url: str
    storage_key: Optional[str] = None
    local_path: Optional[str] = None
    
    @property
    def is_durable(self) -> bool:
        """True when the asset lives in object storage rather than on local disk."""
        return self.storage_key is not None


@dataclass
class RasterAsset:
    """
    A rendered page image.
    
    Created by the rasterizer with a local ``path``; the uploader sets
    ``url``/``storage_key`` and clears ``path`` once the object is durable.
    """
    name: str
    page_number: int
    category: PageCategory
    path: Optional[str] = None
    url: Optional[str] = None
    storage_key: Optional[str] = None
    
    def apply_reference(self, reference: AssetReference) -> None:
        self.url = reference.url
        self.storage_key = reference.storage_key
        self.path = reference.local_path
    
    def to_entry(self) -> Dict[str, Any]:
        """Flat asset entry written to the job record."""
        return {
            "type": self.category.value,
            "name": self.name,
            "url": self.url,
            "page_number": self.page_number,
        }


@dataclass
class CleanedPackage:
    """
    The job package re-saved without its extracted photo pages.
    
    Like RasterAsset, ``path`` is cleared once the file is durable.
    """
    name: str
    pages_removed: List[int]
    page_count: int
    path: Optional[str] = None
    url: Optional[str] = None
    storage_key: Optional[str] = None
    
    def apply_reference(self, reference: AssetReference) -> None:
        self.url = reference.url
        self.storage_key = reference.storage_key
        self.path = reference.local_path


class ExtractionStatus(str, Enum):
    """Extraction state machine: NOT_STARTED -> STARTED -> SUCCEEDED | FAILED."""
    NOT_STARTED = "not_started"
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ExtractionState:
    """
    Extraction progress attached to a job record.
    
    ``complete`` plus ``error`` encode the terminal states; ``started_at``
    without ``complete`` is the in-progress soft lock.
    """
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    processing_time_ms: Optional[int] = None
    complete: bool = False
    error: Optional[str] = None
    
    @property
    def status(self) -> ExtractionStatus:
        if self.complete:
            return ExtractionStatus.FAILED if self.error else ExtractionStatus.SUCCEEDED
        if self.started_at is not None:
            return ExtractionStatus.STARTED
        return ExtractionStatus.NOT_STARTED
    
    @property
    def is_terminal(self) -> bool:
        return self.complete


@dataclass
class ExtractionReport:
    """Structured result of one extraction run."""
    job_id: str
    status: ExtractionStatus
    classification: Optional[ClassificationResult] = None
    drawings: List[RasterAsset] = field(default_factory=list)
    maps: List[RasterAsset] = field(default_factory=list)
    photos: List[RasterAsset] = field(default_factory=list)
    skipped_pages: List[int] = field(default_factory=list)
    processing_time_ms: int = 0
    summary: str = ""
    error: Optional[str] = None
    cleaned_package: Optional[CleanedPackage] = None
    
    @property
    def assets(self) -> List[RasterAsset]:
        """All assets in write-back order: photos, drawings, maps."""
        return [*self.photos, *self.drawings, *self.maps]
    
    def assets_for(self, category: PageCategory) -> List[RasterAsset]:
        return {
            PageCategory.DRAWING: self.drawings,
            PageCategory.MAP: self.maps,
            PageCategory.PHOTO: self.photos,
        }.get(category, [])
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "classification": self.classification.to_dict() if self.classification else None,
            "assets": [asset.to_entry() for asset in self.assets],
            "skippedPages": list(self.skipped_pages),
            "processingTimeMs": self.processing_time_ms,
            "summary": self.summary,
            "error": self.error,
            "cleanedPackage": (
                {
                    "name": self.cleaned_package.name,
                    "url": self.cleaned_package.url,
                    "pagesRemoved": list(self.cleaned_package.pages_removed),
                }
                if self.cleaned_package else None
            ),
        }
