"""
Unit Tests for AssetUploader
"""
import pytest

from workpack.engine.errors import UploadError
from workpack.models.extraction import PageCategory
from workpack.services.asset_uploader import AssetUploader, local_asset_dir, local_package_dir


@pytest.fixture
def raster_file(tmp_path):
    folder = tmp_path / "job_7" / "photos"
    folder.mkdir(parents=True)
    path = folder / "photo_page_3.jpg"
    path.write_bytes(b"\xff\xd8 jpeg")
    return path


class TestUpload:
    
    def test_durable_upload_removes_local_file(self, raster_file, fake_storage):
        storage = fake_storage()
        reference = AssetUploader(storage).upload(str(raster_file), "7", PageCategory.PHOTO)
        
        assert reference.is_durable
        assert reference.storage_key == "jobs/7/photos/photo_page_3.jpg"
        assert reference.url == "https://cdn.example.com/jobs/7/photos/photo_page_3.jpg"
        assert reference.local_path is None
        assert not raster_file.exists()
    
    def test_storage_failure_falls_back_to_local_url(self, raster_file, fake_storage):
        reference = AssetUploader(fake_storage(fail=True)).upload(str(raster_file), "7", PageCategory.PHOTO)
        
        assert not reference.is_durable
        assert reference.url == "/uploads/job_7/photos/photo_page_3.jpg"
        assert reference.local_path == str(raster_file)
        assert raster_file.exists()
    
    def test_unconfigured_storage_falls_back(self, raster_file, fake_storage):
        reference = AssetUploader(fake_storage(configured=False)).upload(
            str(raster_file), "7", PageCategory.PHOTO
        )
        assert reference.url.startswith("/uploads/job_7/")
        assert raster_file.exists()
    
    def test_no_storage_client(self, raster_file):
        reference = AssetUploader(None, local_url_prefix="/files/").upload(
            str(raster_file), "7", PageCategory.MAP
        )
        assert reference.url == "/files/job_7/maps/photo_page_3.jpg"
    
    def test_same_file_under_two_categories(self, raster_file, fake_storage):
        uploader = AssetUploader(fake_storage(fail=True))
        as_photo = uploader.upload(str(raster_file), "7", PageCategory.PHOTO)
        as_drawing = uploader.upload(str(raster_file), "7", PageCategory.DRAWING)
        assert as_photo.url != as_drawing.url
        assert "/drawings/" in as_drawing.url
    
    def test_upload_durable_raises(self, raster_file, fake_storage):
        with pytest.raises(UploadError) as exc_info:
            AssetUploader(fake_storage(fail=True)).upload_durable(str(raster_file), "7", PageCategory.PHOTO)
        assert exc_info.value.path == str(raster_file)


class TestUploadPackage:
    
    @pytest.fixture
    def package_file(self, tmp_path):
        folder = tmp_path / "job_7" / "as_built"
        folder.mkdir(parents=True)
        path = folder / "job_package_cleaned.pdf"
        path.write_bytes(b"%PDF-1.7 cleaned")
        return path
    
    def test_durable_package_upload(self, package_file, fake_storage):
        storage = fake_storage()
        reference = AssetUploader(storage).upload_package(str(package_file), "7")
        
        assert reference.storage_key == "jobs/7/as_built/job_package_cleaned.pdf"
        assert storage.content_types[reference.storage_key] == "application/pdf"
        assert not package_file.exists()
    
    def test_package_falls_back_to_local_url(self, package_file, fake_storage):
        reference = AssetUploader(fake_storage(fail=True)).upload_package(str(package_file), "7")
        
        assert reference.url == "/uploads/job_7/as_built/job_package_cleaned.pdf"
        assert reference.local_path == str(package_file)
        assert package_file.exists()


class TestDiscard:
    
    def test_deletes_durable_object(self, fake_storage):
        storage = fake_storage()
        AssetUploader(storage).discard(storage_key="jobs/7/photos/photo_page_3.jpg")
        assert storage.deleted == ["jobs/7/photos/photo_page_3.jpg"]
    
    def test_removes_local_file(self, raster_file, fake_storage):
        storage = fake_storage()
        AssetUploader(storage).discard(local_path=str(raster_file))
        assert not raster_file.exists()
        assert storage.deleted == []
    
    def test_missing_local_file_is_ignored(self, tmp_path):
        AssetUploader(None).discard(storage_key="jobs/7/maps/a.jpg", local_path=str(tmp_path / "gone.jpg"))


class TestLocalAssetDir:
    
    @pytest.mark.parametrize("category,folder", [
        (PageCategory.PHOTO, "photos"),
        (PageCategory.DRAWING, "drawings"),
        (PageCategory.MAP, "maps"),
    ])
    def test_layout(self, category, folder):
        assert local_asset_dir("uploads", "42", category).replace("\\", "/") == f"uploads/job_42/{folder}"
    
    def test_package_layout(self):
        assert local_package_dir("uploads", "42").replace("\\", "/") == "uploads/job_42/as_built"
