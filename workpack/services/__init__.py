"""Service layer for work-package asset extraction."""

from workpack.services.object_storage import ObjectStorageClient, get_storage_client
from workpack.services.asset_uploader import AssetUploader
from workpack.services.extraction_orchestrator import (
    ExtractionOrchestrator,
    get_extraction_orchestrator
)
from workpack.services.crash_recovery import run_crash_recovery_sweep

__all__ = [
    "ObjectStorageClient",
    "get_storage_client",
    "AssetUploader",
    "ExtractionOrchestrator",
    "get_extraction_orchestrator",
    "run_crash_recovery_sweep"
]
