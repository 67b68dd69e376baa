"""
Supabase Storage Client for extracted package assets.

Durable home of rasterized pages. Objects are keyed
``jobs/{job_id}/{folder}/{filename}`` inside one bucket with public access.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional

from supabase import Client, create_client

from workpack.core.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class StoredObject:
    """Result of a successful upload"""
    key: str


def sanitize_filename(filename: str) -> str:
    """Replace characters that are unsafe in object keys with underscores."""
    return _UNSAFE_KEY_CHARS.sub("_", filename)


def build_object_key(job_id: str, folder: str, filename: str) -> str:
    """
    Build the storage key for an asset.
    
    Key structure: jobs/{job_id}/{folder}/{filename}
    """
    return f"jobs/{job_id}/{folder}/{sanitize_filename(filename)}"


class ObjectStorageClient:
    """
    Client for Supabase Storage operations.
    
    ``is_configured()`` is False when no URL/key is set; callers then keep
    assets on local disk.
    """
    
    MAX_RETRIES = 3
    RETRY_DELAY = 1.0  # seconds
    
    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        bucket: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        """
        Initialize Supabase Storage client.
        
        Args:
            url: Supabase project URL (defaults to settings)
            key: Supabase API key (defaults to settings)
            bucket: Storage bucket name (defaults to settings)
            client: Pre-built Supabase client
        """
        self.url = url or settings.supabase_url
        self.key = key or settings.supabase_key
        self.bucket = bucket or settings.supabase_storage_bucket
        
        self._client: Optional[Client] = client
    
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.url and self.key)
    
    @property
    def client(self) -> Client:
        """Lazy initialization of Supabase client"""
        if self._client is None:
            if not self.url or not self.key:
                raise ValueError(
                    "Supabase URL and Key are required. "
                    "Set SUPABASE_URL and SUPABASE_KEY environment variables."
                )
            self._client = create_client(self.url, self.key)
        return self._client
    
    def upload_file(
        self,
        local_path: str,
        job_id: str,
        folder: str,
        filename: str,
        content_type: str = "image/jpeg",
    ) -> StoredObject:
        """
        Upload a local file with retry logic.
        
        Args:
            local_path: File to upload
            job_id: Owning job
            folder: Asset folder (photos, drawings, maps)
            filename: Object filename
            content_type: MIME type
            
        Returns:
            StoredObject with the object key
            
        Raises:
            Exception: The last upload error once retries are exhausted
        """
        key = build_object_key(job_id, folder, filename)
        with open(local_path, "rb") as f:
            data = f.read()
        
        for attempt in range(self.MAX_RETRIES):
            try:
                self.client.storage.from_(self.bucket).upload(
                    path=key,
                    file=data,
                    file_options={
                        "content-type": content_type,
                        "upsert": "true"  # Overwrite if exists
                    }
                )
                logger.info(f"Uploaded {local_path} to {key}")
                return StoredObject(key=key)
            except Exception as e:
                logger.warning(f"Upload attempt {attempt + 1}/{self.MAX_RETRIES} for {key} failed: {e}")
                if attempt < self.MAX_RETRIES - 1:
                    time.sleep(self.RETRY_DELAY * (attempt + 1))
                else:
                    logger.error(f"Failed to upload {key} after {self.MAX_RETRIES} attempts")
                    raise
        
        raise RuntimeError("Max retries exceeded")
    
    def get_public_url(self, key: str) -> str:
        """
        Get public URL for a stored object.
        
        Args:
            key: Object key
            
        Returns:
            Public URL string
        """
        return self.client.storage.from_(self.bucket).get_public_url(key)
    
    def delete_file(self, key: str) -> bool:
        """
        Delete an object.
        
        Returns:
            True if deletion was successful
        """
        try:
            self.client.storage.from_(self.bucket).remove([key])
            logger.info(f"Deleted object: {key}")
            return True
        except Exception as e:
            logger.error(f"Failed to delete object {key}: {e}")
            return False


# Singleton instance
_storage_client: Optional[ObjectStorageClient] = None


def get_storage_client() -> ObjectStorageClient:
    """Get or create singleton ObjectStorageClient instance"""
    global _storage_client
    if _storage_client is None:
        _storage_client = ObjectStorageClient()
    return _storage_client
