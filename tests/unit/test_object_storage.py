"""
Unit Tests for ObjectStorageClient (Supabase client mocked)
"""
from unittest.mock import MagicMock

import pytest

from workpack.services.object_storage import (
    ObjectStorageClient,
    build_object_key,
    sanitize_filename,
)


@pytest.fixture
def supabase_client():
    return MagicMock()


@pytest.fixture
def storage(supabase_client, monkeypatch):
    client = ObjectStorageClient(url="https://x.supabase.co", key="secret", bucket="packages", client=supabase_client)
    monkeypatch.setattr(ObjectStorageClient, "RETRY_DELAY", 0)
    return client


@pytest.fixture
def local_file(tmp_path):
    path = tmp_path / "map_page_2.jpg"
    path.write_bytes(b"jpeg-bytes")
    return path


class TestKeys:
    
    def test_key_layout(self):
        assert build_object_key("35440499", "maps", "map_page_2.jpg") == "jobs/35440499/maps/map_page_2.jpg"
    
    def test_unsafe_characters_replaced(self):
        assert sanitize_filename("page 1 (copy).jpg") == "page_1__copy_.jpg"


class TestIsConfigured:
    
    def test_configured_with_client(self, storage):
        assert storage.is_configured()
    
    def test_configured_with_credentials(self):
        assert ObjectStorageClient(url="https://x.supabase.co", key="k").is_configured()


class TestUploadFile:
    
    def test_upload(self, storage, supabase_client, local_file):
        stored = storage.upload_file(str(local_file), "9", "maps", "map_page_2.jpg")
        
        assert stored.key == "jobs/9/maps/map_page_2.jpg"
        supabase_client.storage.from_.assert_called_with("packages")
        kwargs = supabase_client.storage.from_.return_value.upload.call_args.kwargs
        assert kwargs["path"] == "jobs/9/maps/map_page_2.jpg"
        assert kwargs["file"] == b"jpeg-bytes"
    
    def test_retry_then_success(self, storage, supabase_client, local_file):
        bucket = supabase_client.storage.from_.return_value
        bucket.upload.side_effect = [ConnectionError("reset"), None]
        
        stored = storage.upload_file(str(local_file), "9", "maps", "map_page_2.jpg")
        
        assert stored.key.endswith("map_page_2.jpg")
        assert bucket.upload.call_count == 2
    
    def test_retries_exhausted(self, storage, supabase_client, local_file):
        bucket = supabase_client.storage.from_.return_value
        bucket.upload.side_effect = ConnectionError("down")
        
        with pytest.raises(ConnectionError):
            storage.upload_file(str(local_file), "9", "maps", "map_page_2.jpg")
        assert bucket.upload.call_count == ObjectStorageClient.MAX_RETRIES


class TestUrlAndDelete:
    
    def test_public_url(self, storage, supabase_client):
        supabase_client.storage.from_.return_value.get_public_url.return_value = "https://cdn/x"
        assert storage.get_public_url("jobs/9/maps/a.jpg") == "https://cdn/x"
    
    def test_delete_failure_returns_false(self, storage, supabase_client):
        supabase_client.storage.from_.return_value.remove.side_effect = RuntimeError("nope")
        assert storage.delete_file("jobs/9/maps/a.jpg") is False
    
    def test_delete_removes_key(self, storage, supabase_client):
        assert storage.delete_file("jobs/9/maps/a.jpg") is True
        supabase_client.storage.from_.return_value.remove.assert_called_once_with(["jobs/9/maps/a.jpg"])
