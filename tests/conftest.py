"""
Pytest Configuration and Fixtures for Work Package Extraction Tests
"""
import io
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import pytest
from hypothesis import settings
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from workpack.engine.document_loader import DocumentLoader
from workpack.engine.errors import BackendUnavailable
from workpack.engine.pdf_backend import RasterBackend, XObjectTable
from workpack.models.database import Base
from workpack.repositories.job_repository import JobRepository
from workpack.services.object_storage import StoredObject

# Configure Hypothesis profiles
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=5000)
settings.load_profile("dev")


# =============================================================================
# Fake PDF backend
# =============================================================================

IMAGE_PAINT = b"q 50 0 0 50 0 0 cm /Im0 Do Q\n"


@dataclass
class FakePage:
    """In-memory page served by FakeBackend."""
    text: str = ""
    content: bytes = b""
    images: Set[str] = field(default_factory=set)
    forms: Dict[str, bytes] = field(default_factory=dict)
    size: Tuple[float, float] = (50.0, 40.0)
    broken: bool = False
    render_fails: bool = False
    backend_lost: bool = False
    render_size: Optional[Tuple[int, int]] = None


def text_page(text: str) -> FakePage:
    return FakePage(text=text)


def image_page(text: str = "", image_count: int = 1) -> FakePage:
    return FakePage(text=text, content=IMAGE_PAINT * image_count, images={"Im0"})


class FakeBackend(RasterBackend):
    """RasterBackend over FakePage lists; the PDF bytes are ignored."""
    
    name = "fake"
    
    def __init__(self, pages: Optional[List[FakePage]] = None, open_failures: int = 0):
        self.pages = list(pages or [])
        self.open_failures = open_failures
        self.open_calls = 0
        self.closed = 0
    
    def open(self, data: bytes):
        self.open_calls += 1
        if self.open_calls <= self.open_failures:
            raise ValueError("xref table damaged")
        return list(self.pages)
    
    def page_count(self, handle) -> int:
        return len(handle)
    
    def load_page(self, handle, index: int):
        return handle[index]
    
    def page_size(self, page):
        return page.size
    
    def text_runs(self, page):
        if page.broken:
            raise RuntimeError("content stream truncated")
        return [page.text] if page.text else []
    
    def content_stream(self, page):
        return page.content
    
    def xobjects(self, page):
        return XObjectTable(images=set(page.images), forms=dict(page.forms))
    
    def render_rgba(self, page, scale: float):
        if page.backend_lost:
            raise BackendUnavailable("libmupdf unloaded")
        if page.render_fails:
            raise RuntimeError("render failed")
        size = page.render_size or (int(page.size[0] * scale), int(page.size[1] * scale))
        return Image.new("RGBA", size, (0, 0, 0, 0))
    
    def export_without_pages(self, handle, page_numbers):
        drop = {n - 1 for n in page_numbers}
        kept = [i for i in range(len(handle)) if i not in drop]
        handle[:] = [handle[i] for i in kept]
        return b"%PDF-fake pages " + ",".join(str(i + 1) for i in kept).encode()
    
    def close(self, handle) -> None:
        self.closed += 1


class FakeStorage:
    """Object-storage stand-in recording uploads and deletes."""
    
    def __init__(self, configured: bool = True, fail: bool = False):
        self.configured = configured
        self.fail = fail
        self.uploads: List[str] = []
        self.content_types: Dict[str, str] = {}
        self.deleted: List[str] = []
    
    def is_configured(self) -> bool:
        return self.configured
    
    def upload_file(self, local_path, job_id, folder, filename, content_type="image/jpeg"):
        if self.fail:
            raise ConnectionError("storage rejected upload")
        key = f"jobs/{job_id}/{folder}/{filename}"
        self.uploads.append(key)
        self.content_types[key] = content_type
        return StoredObject(key=key)
    
    def get_public_url(self, key: str) -> str:
        return f"https://cdn.example.com/{key}"
    
    def delete_file(self, key: str) -> bool:
        self.deleted.append(key)
        return True


@pytest.fixture
def fake_page():
    return FakePage


@pytest.fixture
def make_text_page():
    return text_page


@pytest.fixture
def make_image_page():
    return image_page


@pytest.fixture
def fake_backend():
    return FakeBackend


@pytest.fixture
def fake_storage():
    return FakeStorage


@pytest.fixture
def load_fake_document():
    """Build a SourceDocument over fake pages."""
    def _load(pages: List[FakePage]):
        backend = FakeBackend(pages)
        return DocumentLoader(backend).load(b"%PDF-1.4 fake", source_path="fake.pdf")
    return _load


# =============================================================================
# Job store
# =============================================================================

@pytest.fixture
def session_factory():
    """In-memory SQLite job store shared across sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def job_repository(session_factory):
    return JobRepository(session_factory=session_factory)


@pytest.fixture
def package_folders():
    """Document tree of a freshly created job."""
    return [
        {
            "name": "ACI",
            "documents": [],
            "subfolders": [
                {"name": "Pre-Field Documents", "documents": [], "subfolders": []},
                {"name": "General Forms", "documents": [], "subfolders": []},
            ],
        }
    ]


# =============================================================================
# Real PDFs (PyMuPDF)
# =============================================================================

def _png(color: str) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def build_pdf():
    """
    Build PDF bytes with PyMuPDF.
    
    Each page is given as (text, image_count); pages are 200x200 points.
    """
    import fitz
    
    colors = ["red", "green", "blue", "yellow", "purple"]
    
    def _build(pages: List[Tuple[str, int]]) -> bytes:
        doc = fitz.open()
        for text, image_count in pages:
            page = doc.new_page(width=200, height=200)
            if text:
                page.insert_text((10, 20), text, fontsize=8)
            for i in range(image_count):
                rect = fitz.Rect(10 + i * 30, 60, 35 + i * 30, 85)
                page.insert_image(rect, stream=_png(colors[i % len(colors)]))
        data = doc.tobytes()
        doc.close()
        return data
    
    return _build


@pytest.fixture
def scenario_pages():
    """
    Six-page package: form, map, photo, drawing, the photo page again, unclassified.
    """
    photo = ("", 1)
    return [
        ("Crew Materials", 0),
        ("Circuit Map", 1),
        photo,
        ("Plan View Drawing", 0),
        photo,
        ("General notes for the crew lead", 0),
    ]
