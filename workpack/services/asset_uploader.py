"""
Asset Uploader

Moves a rasterized page (or the cleaned job package) into durable object
storage. When storage is not configured or rejects the file, the local file
stays in place and is served from the job's local asset directory instead.
"""
import logging
import os
from typing import Optional

from workpack.engine.errors import UploadError
from workpack.models.extraction import AssetReference, PageCategory
from workpack.services.object_storage import ObjectStorageClient

logger = logging.getLogger(__name__)

# Folder of the cleaned job package, next to photos/drawings/maps
PACKAGE_FOLDER = "as_built"


def local_asset_dir(uploads_dir: str, job_id: str, category: PageCategory) -> str:
    """uploads/job_<id>/{photos,drawings,maps}"""
    return os.path.join(uploads_dir, f"job_{job_id}", category.folder)


def local_package_dir(uploads_dir: str, job_id: str) -> str:
    """uploads/job_<id>/as_built"""
    return os.path.join(uploads_dir, f"job_{job_id}", PACKAGE_FOLDER)


class AssetUploader:
    """
    Stateless uploader; every call stands alone.
    
    The same file may be uploaded under different categories, each call
    producing its own object key.
    """
    
    def __init__(
        self,
        storage: Optional[ObjectStorageClient],
        local_url_prefix: str = "/uploads",
    ):
        self.storage = storage
        self.local_url_prefix = local_url_prefix.rstrip("/")
    
    def is_durable_storage(self) -> bool:
        return self.storage is not None and self.storage.is_configured()
    
    def local_url(self, job_id: str, category: PageCategory, filename: str) -> str:
        return self._local_url(job_id, category.folder, filename)
    
    def _local_url(self, job_id: str, folder: str, filename: str) -> str:
        return f"{self.local_url_prefix}/job_{job_id}/{folder}/{filename}"
    
    def upload_durable(self, local_path: str, job_id: str, category: PageCategory) -> AssetReference:
        """
        Upload to object storage only.
        
        Raises:
            UploadError: Storage is not configured or rejected the file
        """
        return self._upload_durable(local_path, job_id, category.folder, "image/jpeg")
    
    def _upload_durable(self, local_path: str, job_id: str, folder: str, content_type: str) -> AssetReference:
        if not self.is_durable_storage():
            raise UploadError(local_path, "Object storage is not configured")
        
        filename = os.path.basename(local_path)
        try:
            stored = self.storage.upload_file(local_path, job_id, folder, filename, content_type)
            url = self.storage.get_public_url(stored.key)
        except Exception as e:
            raise UploadError(local_path, f"Upload failed for {local_path}: {e}") from e
        
        try:
            os.remove(local_path)
        except OSError as e:
            logger.warning(f"Uploaded {local_path} but could not remove it: {e}")
        
        return AssetReference(url=url, storage_key=stored.key)
    
    def upload(self, local_path: str, job_id: str, category: PageCategory) -> AssetReference:
        """
        Upload an asset, falling back to a local URL.
        
        Args:
            local_path: Rasterized page on disk
            job_id: Owning job
            category: Asset category (selects the folder)
        
        Returns:
            AssetReference; durable when storage accepted the file
        """
        return self._upload_or_keep(local_path, job_id, category.folder, "image/jpeg")
    
    def upload_package(self, local_path: str, job_id: str) -> AssetReference:
        """Upload the cleaned job package, falling back to a local URL."""
        return self._upload_or_keep(local_path, job_id, PACKAGE_FOLDER, "application/pdf")
    
    def _upload_or_keep(self, local_path: str, job_id: str, folder: str, content_type: str) -> AssetReference:
        try:
            return self._upload_durable(local_path, job_id, folder, content_type)
        except UploadError as e:
            logger.warning(f"{e}; keeping local copy")
            return AssetReference(
                url=self._local_url(job_id, folder, os.path.basename(local_path)),
                local_path=local_path,
            )
    
    def discard(self, storage_key: Optional[str] = None, local_path: Optional[str] = None) -> None:
        """
        Remove an asset that will not be recorded on the job.
        
        Failures are logged; discarding never raises.
        """
        if storage_key and self.is_durable_storage():
            self.storage.delete_file(storage_key)
        if local_path:
            try:
                os.remove(local_path)
            except OSError as e:
                logger.warning(f"Could not remove {local_path}: {e}")
