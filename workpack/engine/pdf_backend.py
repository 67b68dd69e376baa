"""
PDF Raster Backend

The native PDF library (PyMuPDF) is wrapped behind ``RasterBackend`` and
injected into the loader, analyzer and rasterizer. When the library cannot
be loaded on the host, ``load_raster_backend()`` returns an
``UnavailableBackend`` and every extraction run short-circuits.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from PIL import Image

from workpack.engine.errors import BackendUnavailable

logger = logging.getLogger(__name__)


@dataclass
class XObjectTable:
    """
    XObjects reachable from a page's resources.
    
    Attributes:
        images: resource names of image XObjects (without the leading slash)
        forms: resource name -> decoded content stream of form XObjects
    """
    images: Set[str] = field(default_factory=set)
    forms: Dict[str, bytes] = field(default_factory=dict)


class RasterBackend(ABC):
    """Capability interface over a native PDF parsing/rendering library."""
    
    name = "abstract"
    
    def is_available(self) -> bool:
        return True
    
    @abstractmethod
    def open(self, data: bytes) -> Any:
        """Parse PDF bytes into a native document handle. Raises on failure."""
    
    @abstractmethod
    def page_count(self, handle: Any) -> int:
        ...
    
    @abstractmethod
    def load_page(self, handle: Any, index: int) -> Any:
        """Load a page by 0-based index."""
    
    @abstractmethod
    def page_size(self, page: Any) -> Tuple[float, float]:
        """Logical page size in PDF points (width, height)."""
    
    @abstractmethod
    def text_runs(self, page: Any) -> List[str]:
        """Text fragments of the page in reading order."""
    
    @abstractmethod
    def content_stream(self, page: Any) -> bytes:
        """Decoded, concatenated content stream of the page."""
    
    @abstractmethod
    def xobjects(self, page: Any) -> XObjectTable:
        ...
    
    @abstractmethod
    def render_rgba(self, page: Any, scale: float) -> Image.Image:
        """Execute the page's draw instructions into an RGBA image (transparent background)."""
    
    @abstractmethod
    def export_without_pages(self, handle: Any, page_numbers: Iterable[int]) -> bytes:
        """
        Serialise the document minus the given 1-indexed pages.
        
        The handle is modified in place and must not be rendered from afterwards.
        """
    
    def close(self, handle: Any) -> None:
        pass


class PyMuPDFBackend(RasterBackend):
    """RasterBackend implemented with PyMuPDF (fitz)."""
    
    name = "pymupdf"
    
    def __init__(self, fitz_module):
        self._fitz = fitz_module
    
    def open(self, data: bytes) -> Any:
        doc = self._fitz.open(stream=data, filetype="pdf")
        if doc.needs_pass and not doc.authenticate(""):
            doc.close()
            raise ValueError("PDF is password protected")
        if doc.is_repaired:
            logger.info("PyMuPDF repaired a damaged cross-reference table while opening")
        return doc
    
    def page_count(self, handle: Any) -> int:
        return handle.page_count
    
    def load_page(self, handle: Any, index: int) -> Any:
        return handle.load_page(index)
    
    def page_size(self, page: Any) -> Tuple[float, float]:
        rect = page.rect
        return rect.width, rect.height
    
    def text_runs(self, page: Any) -> List[str]:
        runs = []
        for block in page.get_text("dict").get("blocks", []):
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    if span.get("text"):
                        runs.append(span["text"])
        return runs
    
    def content_stream(self, page: Any) -> bytes:
        return page.read_contents() or b""
    
    def xobjects(self, page: Any) -> XObjectTable:
        table = XObjectTable()
        # (xref, smask, width, height, bpc, colorspace, alt_colorspace, name, filter, referencer)
        for item in page.get_images(full=True):
            table.images.add(item[7])
        
        doc = page.parent
        # (xref, name, invoker, bbox)
        for xref, name, _invoker, _bbox in page.get_xobjects():
            if name in table.images or name in table.forms:
                continue
            table.forms[name] = doc.xref_stream(xref) or b""
        return table
    
    def render_rgba(self, page: Any, scale: float) -> Image.Image:
        pix = page.get_pixmap(matrix=self._fitz.Matrix(scale, scale), alpha=True)
        try:
            return Image.frombytes("RGBA", (pix.width, pix.height), pix.samples)
        finally:
            del pix
    
    def export_without_pages(self, handle: Any, page_numbers: Iterable[int]) -> bytes:
        drop = {n - 1 for n in page_numbers}
        keep = [i for i in range(handle.page_count) if i not in drop]
        if not keep:
            raise ValueError("Cannot remove every page of a document")
        handle.select(keep)
        return handle.tobytes(garbage=3, deflate=True)
    
    def close(self, handle: Any) -> None:
        handle.close()


class UnavailableBackend(RasterBackend):
    """Stands in for a backend whose native library failed to load."""
    
    name = "unavailable"
    
    def __init__(self, reason: str):
        self.reason = reason
    
    def is_available(self) -> bool:
        return False
    
    def _unavailable(self, *args, **kwargs):
        raise BackendUnavailable(self.reason)
    
    open = _unavailable
    page_count = _unavailable
    load_page = _unavailable
    page_size = _unavailable
    text_runs = _unavailable
    content_stream = _unavailable
    xobjects = _unavailable
    render_rgba = _unavailable
    export_without_pages = _unavailable


def load_raster_backend() -> RasterBackend:
    """
    Load the native PDF backend once.
    
    Returns:
        PyMuPDFBackend, or UnavailableBackend carrying the load error
    """
    try:
        import fitz  # PyMuPDF
    except (ImportError, OSError) as e:
        logger.warning(f"PDF backend not available, extraction disabled: {e}")
        return UnavailableBackend(str(e))
    
    logger.info(f"PDF backend loaded: PyMuPDF {getattr(fitz, 'VersionBind', 'unknown')}")
    return PyMuPDFBackend(fitz)


# Singleton instance
_raster_backend: Optional[RasterBackend] = None


def get_raster_backend() -> RasterBackend:
    """Get or load the process-wide RasterBackend"""
    global _raster_backend
    if _raster_backend is None:
        _raster_backend = load_raster_backend()
    return _raster_backend
