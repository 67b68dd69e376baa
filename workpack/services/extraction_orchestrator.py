"""
Extraction Orchestrator

Runs one job's package end to end:
    
    Started -> Loader -> Analyzer -> Classifier (all pages)
            -> Rasterizer (capped selection) -> Uploader -> job store
            -> Package cleaner (photo pages stripped, non-fatal)

``run()`` never raises. Every path ends in a terminal job state (or, when
the job store itself is unreachable, in a logged error) and the source PDF
is removed afterwards.
"""
import logging
import os
import threading
import time
from typing import List, Optional, Sequence

from workpack.engine.document_loader import DocumentLoader, SourceDocument
from workpack.engine.errors import BackendUnavailable, ParseError
from workpack.engine.package_cleaner import PackageCleaner
from workpack.engine.page_analyzer import PageContentAnalyzer, get_page_analyzer
from workpack.engine.page_classifier import PageClassifier
from workpack.engine.pdf_backend import RasterBackend
from workpack.engine.rasterizer import Rasterizer
from workpack.models.extraction import (
    ClassificationResult,
    CleanedPackage,
    ExtractionReport,
    ExtractionStatus,
    PageCategory,
)
from workpack.repositories.job_repository import JobRepository
from workpack.services.asset_uploader import AssetUploader, local_asset_dir, local_package_dir

logger = logging.getLogger(__name__)

# One document at a time: the native backend is not thread-safe
_pipeline_lock = threading.Lock()


def build_summary(report: ExtractionReport) -> str:
    total = report.classification.total_pages if report.classification else 0
    return (
        f"Extracted {len(report.drawings)} drawings, {len(report.maps)} maps, "
        f"{len(report.photos)} photos from {total} pages"
    )


class ExtractionOrchestrator:
    """
    Coordinates one extraction run per call.
    
    Usage:
        orchestrator = ExtractionOrchestrator.from_settings(backend)
        report = orchestrator.run(job_id, pdf_path)
    """
    
    def __init__(
        self,
        backend: RasterBackend,
        repository: JobRepository,
        uploader: AssetUploader,
        classifier: Optional[PageClassifier] = None,
        analyzer: Optional[PageContentAnalyzer] = None,
        rasterizer: Optional[Rasterizer] = None,
        cleaner: Optional[PackageCleaner] = None,
        uploads_dir: str = "uploads",
        max_drawing_pages: int = 5,
        max_map_pages: int = 3,
        max_photo_pages: int = 15,
        folder_path: Sequence[str] = ("ACI", "Pre-Field Documents"),
        cleanup_source_pdf: bool = True,
        strip_photo_pages: bool = True,
        package_folder_path: Sequence[str] = ("ACI", "Field As Built"),
    ):
        self.backend = backend
        self.repository = repository
        self.uploader = uploader
        self.loader = DocumentLoader(backend)
        self.classifier = classifier or PageClassifier()
        self.analyzer = analyzer or PageContentAnalyzer()
        self.rasterizer = rasterizer or Rasterizer()
        self.cleaner = cleaner or PackageCleaner()
        self.uploads_dir = uploads_dir
        self.caps = {
            PageCategory.DRAWING: max_drawing_pages,
            PageCategory.MAP: max_map_pages,
            PageCategory.PHOTO: max_photo_pages,
        }
        self.folder_path = list(folder_path)
        self.cleanup_source_pdf = cleanup_source_pdf
        self.strip_photo_pages = strip_photo_pages
        self.package_folder_path = list(package_folder_path)
        
        logger.info(
            f"ExtractionOrchestrator initialized: backend={backend.name}, "
            f"caps drawings={max_drawing_pages} maps={max_map_pages} photos={max_photo_pages}"
        )
    
    @classmethod
    def from_settings(
        cls,
        backend: RasterBackend,
        repository: Optional[JobRepository] = None,
        uploader: Optional[AssetUploader] = None,
        settings=None,
    ) -> "ExtractionOrchestrator":
        if settings is None:
            from workpack.core.config import settings
        if repository is None:
            from workpack.repositories.job_repository import get_job_repository
            repository = get_job_repository()
        if uploader is None:
            from workpack.services.object_storage import get_storage_client
            uploader = AssetUploader(get_storage_client(), settings.local_asset_url_prefix)
        
        return cls(
            backend=backend,
            repository=repository,
            uploader=uploader,
            classifier=PageClassifier.from_settings(settings),
            analyzer=get_page_analyzer(),
            rasterizer=Rasterizer.from_settings(settings),
            uploads_dir=settings.uploads_dir,
            max_drawing_pages=settings.max_drawing_pages,
            max_map_pages=settings.max_map_pages,
            max_photo_pages=settings.max_photo_pages,
            folder_path=settings.asset_folder_path,
            cleanup_source_pdf=settings.cleanup_source_pdf,
            strip_photo_pages=settings.strip_photo_pages,
            package_folder_path=settings.package_folder_path,
        )
    
    # =========================================================================
    # PIPELINE
    # =========================================================================
    
    def classify_document(self, doc: SourceDocument) -> tuple:
        """
        Analyze and classify every page.
        
        Returns:
            (ClassificationResult, analysis-skipped page numbers)
        """
        signatures, skipped = self.analyzer.analyze_document(doc)
        return self.classifier.classify_pages(signatures, total_pages=doc.page_count), skipped
    
    def select_pages(self, classification: ClassificationResult, category: PageCategory) -> List[int]:
        """First N pages of a category, N being its cap."""
        return classification.pages_for(category)[:self.caps[category]]
    
    def extract(
        self,
        doc: SourceDocument,
        job_id: str,
        report: Optional[ExtractionReport] = None,
    ) -> ExtractionReport:
        """
        Classify, rasterize and upload; no job-state writes.
        
        Args:
            doc: Loaded package
            job_id: Owning job (selects asset folders and keys)
            report: Report to fill in place (assets stay visible to the caller on error)
        
        Returns:
            ExtractionReport with status SUCCEEDED
        """
        if report is None:
            report = ExtractionReport(job_id=job_id, status=ExtractionStatus.SUCCEEDED)
        classification, skipped = self.classify_document(doc)
        report.classification = classification
        report.skipped_pages.extend(skipped)
        
        for category in (PageCategory.DRAWING, PageCategory.MAP, PageCategory.PHOTO):
            selected = self.select_pages(classification, category)
            if not selected:
                continue
            
            logger.info(f"Job {job_id}: rasterizing {len(selected)} {category.folder}: {selected}")
            output_dir = local_asset_dir(self.uploads_dir, job_id, category)
            assets, render_skipped = self.rasterizer.convert_pages(doc, selected, output_dir, category)
            report.skipped_pages.extend(render_skipped)
            report.assets_for(category).extend(assets)
            
            for asset in assets:
                asset.apply_reference(self.uploader.upload(asset.path, job_id, category))
        
        report.skipped_pages = sorted(set(report.skipped_pages))
        report.summary = build_summary(report)
        return report
    
    def clean_package(
        self,
        doc: SourceDocument,
        job_id: str,
        report: ExtractionReport,
        source_name: str,
    ) -> Optional[CleanedPackage]:
        """
        Save and upload the package without the extracted photo pages.
        
        Runs after ``extract`` on the same document. Failures are logged and
        leave the report without a cleaned package.
        """
        photo_pages = [asset.page_number for asset in report.photos]
        if not photo_pages:
            return None
        
        output_dir = local_package_dir(self.uploads_dir, job_id)
        try:
            package = self.cleaner.strip_pages(doc, photo_pages, output_dir, source_name)
            if package is None:
                return None
            package.apply_reference(self.uploader.upload_package(package.path, job_id))
        except Exception as e:
            logger.warning(f"Job {job_id}: could not strip photo pages (non-fatal): {e}")
            return None
        
        report.cleaned_package = package
        return package
    
    # =========================================================================
    # FULL RUN
    # =========================================================================
    
    def run(self, job_id: str, pdf_path: Optional[str] = None) -> ExtractionReport:
        """
        Execute one extraction run for a job.
        
        Args:
            job_id: Job to extract for
            pdf_path: Package on local disk (defaults to the job's source PDF)
        
        Returns:
            ExtractionReport (SUCCEEDED or FAILED); never raises
        """
        if not self.backend.is_available():
            return self._skip(job_id, pdf_path)
        
        started = time.monotonic()
        try:
            if pdf_path is None:
                job = self.repository.get_job(job_id)
                pdf_path = job.source_pdf_path if job else None
            self.repository.mark_extraction_started(job_id)
        except Exception as e:
            logger.exception(f"Job {job_id}: could not record extraction start")
            self._remove_source(pdf_path)
            return ExtractionReport(job_id=job_id, status=ExtractionStatus.FAILED, error=str(e))
        
        report = ExtractionReport(job_id=job_id, status=ExtractionStatus.SUCCEEDED)
        try:
            if not pdf_path:
                raise FileNotFoundError(f"Job {job_id} has no source PDF")
            
            source_name = os.path.basename(pdf_path)
            with _pipeline_lock:
                with self.loader.load_file(pdf_path) as doc:
                    self.extract(doc, job_id, report)
                    if self.strip_photo_pages:
                        self.clean_package(doc, job_id, report, source_name)
            
            report.processing_time_ms = _elapsed_ms(started)
            self.repository.mark_extraction_succeeded(
                job_id,
                report.assets,
                source_name=source_name,
                folder_path=self.folder_path,
                processing_time_ms=report.processing_time_ms,
            )
            if report.cleaned_package is not None:
                self._record_cleaned_package(job_id, report, source_name)
            logger.info(
                f"Job {job_id}: {report.summary} in {report.processing_time_ms / 1000:.1f}s"
            )
            return report
        
        except BackendUnavailable:
            logger.warning(f"Job {job_id}: PDF backend became unavailable mid-run")
            self._discard_assets(report)
            return self._skip(job_id, pdf_path)
        
        except Exception as e:
            if isinstance(e, ParseError):
                logger.error(f"Job {job_id}: {e}")
            else:
                logger.exception(f"Job {job_id}: extraction failed")
            self._discard_assets(report)
            failed = ExtractionReport(
                job_id=job_id,
                status=ExtractionStatus.FAILED,
                processing_time_ms=_elapsed_ms(started),
                error=str(e),
            )
            try:
                self.repository.mark_extraction_failed(
                    job_id, failed.error, processing_time_ms=failed.processing_time_ms
                )
            except Exception:
                logger.exception(f"Job {job_id}: could not record extraction failure")
            return failed
        
        finally:
            self._remove_source(pdf_path)
    
    def _skip(self, job_id: str, pdf_path: Optional[str]) -> ExtractionReport:
        """Backend unavailable: complete with no assets and no error."""
        logger.info(f"Job {job_id}: PDF backend unavailable, skipping extraction")
        try:
            self.repository.mark_extraction_skipped(job_id)
        except Exception:
            logger.exception(f"Job {job_id}: could not record skipped extraction")
        self._remove_source(pdf_path)
        return ExtractionReport(
            job_id=job_id,
            status=ExtractionStatus.SUCCEEDED,
            summary="PDF backend unavailable; extraction skipped",
        )
    
    def _remove_source(self, pdf_path: Optional[str]) -> None:
        if not self.cleanup_source_pdf or not pdf_path:
            return
        try:
            if os.path.exists(pdf_path):
                os.remove(pdf_path)
                logger.info(f"Removed source PDF {pdf_path}")
        except OSError as e:
            logger.warning(f"Could not remove source PDF {pdf_path}: {e}")
    
    def _record_cleaned_package(self, job_id: str, report: ExtractionReport, source_name: str) -> None:
        """Write the cleaned package to the document tree; drop it on failure."""
        package = report.cleaned_package
        try:
            self.repository.record_cleaned_package(
                job_id, package, folder_path=self.package_folder_path, source_name=source_name
            )
        except Exception:
            logger.exception(f"Job {job_id}: could not record cleaned package (non-fatal)")
            self.uploader.discard(package.storage_key, package.path)
            report.cleaned_package = None
    
    def _discard_assets(self, report: ExtractionReport) -> None:
        """Delete rasters and the cleaned package after a terminal failure."""
        for asset in report.assets:
            self.uploader.discard(asset.storage_key, asset.path)
        if report.cleaned_package is not None:
            self.uploader.discard(report.cleaned_package.storage_key, report.cleaned_package.path)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


# Singleton instance
_orchestrator: Optional[ExtractionOrchestrator] = None


def get_extraction_orchestrator(backend: Optional[RasterBackend] = None) -> ExtractionOrchestrator:
    """Get or create singleton ExtractionOrchestrator instance"""
    global _orchestrator
    if _orchestrator is None:
        if backend is None:
            from workpack.engine.pdf_backend import get_raster_backend
            backend = get_raster_backend()
        _orchestrator = ExtractionOrchestrator.from_settings(backend)
    return _orchestrator
