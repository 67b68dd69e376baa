"""
Extraction error taxonomy.

Only ParseError and BackendUnavailable end a run early. AnalysisError and
RenderError skip one page, UploadError falls back to local storage.
"""
from enum import Enum
from typing import Optional


class ExtractionError(Exception):
    """Base class for all extraction pipeline errors."""


class ParseErrorReason(str, Enum):
    CORRUPT = "corrupt"
    EMPTY = "empty"


class ParseError(ExtractionError):
    """The package cannot be opened as a PDF at all."""
    
    def __init__(self, reason: ParseErrorReason, message: str = ""):
        self.reason = reason
        super().__init__(message or f"PDF could not be loaded ({reason.value})")


class AnalysisError(ExtractionError):
    """A single page's content could not be read."""
    
    def __init__(self, page_number: int, message: str = ""):
        self.page_number = page_number
        super().__init__(message or f"Page {page_number} could not be analyzed")


class RenderError(ExtractionError):
    """A single page could not be rasterized."""
    
    def __init__(self, page_number: int, message: str = ""):
        self.page_number = page_number
        super().__init__(message or f"Page {page_number} could not be rendered")


class UploadError(ExtractionError):
    """Durable storage rejected a file."""
    
    def __init__(self, path: str, message: str = "", key: Optional[str] = None):
        self.path = path
        self.key = key
        super().__init__(message or f"Upload failed for {path}")


class BackendUnavailable(ExtractionError):
    """The native PDF parsing/raster library could not be loaded."""
    
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"PDF backend unavailable: {reason}")
