"""
Document Loader

Decodes a work-package PDF into a SourceDocument. Damaged cross-reference
tables are tolerated through a lenient PyPDF2 re-serialisation pass; when
that also fails the run fails fast with ParseError.

Also provides the bounded first-page preview used when a package is
uploaded.
"""
import io
import logging
import os
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Optional

from PyPDF2 import PdfReader, PdfWriter

from workpack.engine.errors import BackendUnavailable, ParseError, ParseErrorReason
from workpack.engine.pdf_backend import RasterBackend

logger = logging.getLogger(__name__)


@dataclass
class SourceDocument:
    """
    A decoded PDF owned by one extraction run.
    
    Release it with close() (or use it as a context manager) once the
    selected pages are rasterized.
    """
    handle: Any
    page_count: int
    backend: RasterBackend
    source_path: Optional[str] = None
    repaired: bool = False
    
    def page(self, page_number: int) -> Any:
        """Load a page by 1-indexed page number."""
        if not 1 <= page_number <= self.page_count:
            raise IndexError(f"Page {page_number} out of range 1..{self.page_count}")
        return self.backend.load_page(self.handle, page_number - 1)
    
    def close(self) -> None:
        if self.handle is not None:
            self.backend.close(self.handle)
            self.handle = None
    
    def __enter__(self) -> "SourceDocument":
        return self
    
    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class DocumentLoader:
    """Opens package bytes with the injected RasterBackend."""
    
    def __init__(self, backend: RasterBackend):
        self.backend = backend
    
    def load(self, data: bytes, source_path: Optional[str] = None) -> SourceDocument:
        """
        Parse PDF bytes.
        
        Args:
            data: Raw PDF bytes
            source_path: Where the bytes came from (for logging/reporting)
            
        Returns:
            SourceDocument with page_count >= 1
            
        Raises:
            BackendUnavailable: No native PDF library on this host
            ParseError: CORRUPT if unparseable, EMPTY if zero pages
        """
        if not self.backend.is_available():
            raise BackendUnavailable(getattr(self.backend, "reason", "not loaded"))
        if not data:
            raise ParseError(ParseErrorReason.CORRUPT, "PDF is empty (0 bytes)")
        
        repaired = False
        try:
            handle = self.backend.open(data)
        except BackendUnavailable:
            raise
        except Exception as e:
            logger.warning(f"Standard parse failed ({e}), trying lenient recovery")
            recovered = recover_pdf_bytes(data)
            if recovered is None:
                raise ParseError(ParseErrorReason.CORRUPT, f"PDF could not be parsed: {e}") from e
            try:
                handle = self.backend.open(recovered)
            except Exception as retry_error:
                raise ParseError(
                    ParseErrorReason.CORRUPT,
                    f"PDF could not be parsed after recovery: {retry_error}"
                ) from retry_error
            repaired = True
        
        page_count = self.backend.page_count(handle)
        if page_count == 0:
            self.backend.close(handle)
            raise ParseError(ParseErrorReason.EMPTY, "PDF has no pages")
        
        logger.info(
            f"Loaded PDF {source_path or '<bytes>'}: {page_count} pages"
            f"{' (recovered)' if repaired else ''}"
        )
        return SourceDocument(
            handle=handle,
            page_count=page_count,
            backend=self.backend,
            source_path=source_path,
            repaired=repaired,
        )
    
    def load_file(self, path: str) -> SourceDocument:
        """Read a PDF from disk and load it."""
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise ParseError(ParseErrorReason.CORRUPT, f"PDF could not be read: {e}") from e
        return self.load(data, source_path=path)


def recover_pdf_bytes(data: bytes) -> Optional[bytes]:
    """
    Re-serialise whatever pages a lenient parser can read.
    
    Returns:
        New PDF bytes, or None if nothing could be recovered
    """
    try:
        reader = PdfReader(io.BytesIO(data), strict=False)
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)
        if len(writer.pages) == 0:
            return None
        buffer = io.BytesIO()
        writer.write(buffer)
        logger.info(f"Lenient recovery salvaged {len(writer.pages)} pages")
        return buffer.getvalue()
    except Exception as e:
        logger.warning(f"Lenient recovery failed: {e}")
        return None


# =============================================================================
# FIRST-PAGE PREVIEW
# =============================================================================

@dataclass
class PackagePreview:
    """Short text sample of an uploaded package."""
    text: str
    source: str  # "first_page", "filename" or "empty"


def _first_page_text(pdf_path: str) -> str:
    reader = PdfReader(pdf_path, strict=False)
    if len(reader.pages) == 0:
        return ""
    return reader.pages[0].extract_text() or ""


def _filename_preview(original_filename: Optional[str]) -> PackagePreview:
    if original_filename:
        return PackagePreview(text=original_filename, source="filename")
    return PackagePreview(text="", source="empty")


def read_package_preview(
    pdf_path: str,
    original_filename: Optional[str] = None,
    full_parse_max_bytes: int = 2 * 1024 * 1024,
    timeout_seconds: float = 15.0,
    max_chars: int = 3000,
) -> PackagePreview:
    """
    Read a bounded text preview of a package.
    
    Large files skip parsing and use the filename. Otherwise only the first
    page is parsed; a parse exceeding ``timeout_seconds`` is abandoned and the
    filename is used instead.
    
    Args:
        pdf_path: Path of the saved upload
        original_filename: Filename supplied by the client
        full_parse_max_bytes: Size above which parsing is skipped
        timeout_seconds: Deadline for the first-page parse
        max_chars: Preview text is truncated to this length
        
    Returns:
        PackagePreview
    """
    try:
        size = os.path.getsize(pdf_path)
    except OSError as e:
        logger.warning(f"Preview: cannot stat {pdf_path}: {e}")
        return _filename_preview(original_filename)
    
    if size > full_parse_max_bytes:
        logger.info(f"Preview: {size} bytes exceeds {full_parse_max_bytes}, using filename")
        return _filename_preview(original_filename)
    
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(_first_page_text, pdf_path)
    try:
        text = future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        logger.warning(f"Preview: first-page parse exceeded {timeout_seconds}s, abandoned")
        return _filename_preview(original_filename)
    except Exception as e:
        logger.warning(f"Preview: first-page parse failed: {e}")
        return _filename_preview(original_filename)
    finally:
        # Never wait on an abandoned parse
        executor.shutdown(wait=False)
    
    text = text.strip()
    if not text:
        return _filename_preview(original_filename)
    return PackagePreview(text=text[:max_chars], source="first_page")
