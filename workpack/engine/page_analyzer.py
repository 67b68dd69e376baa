"""
Page Content Analyzer

Reduces one PDF page to a PageSignature: its lowercased text and the number
of image-paint operators in its content stream. Image XObjects painted with
``Do`` (including those inside form XObjects) and inline images
(``BI ... ID ... EI``) both count.

A page whose content cannot be read raises AnalysisError; the document scan
skips it and carries on.
"""
import logging
import re
from typing import List, Optional, Set, Tuple

from workpack.engine.document_loader import SourceDocument
from workpack.engine.errors import AnalysisError, BackendUnavailable
from workpack.engine.pdf_backend import XObjectTable
from workpack.models.extraction import PageSignature

logger = logging.getLogger(__name__)

_INLINE_IMAGE = re.compile(rb"\bBI\b.*?\bID\b.*?\bEI\b", re.DOTALL)
_XOBJECT_PAINT = re.compile(rb"/([^\s/\[\]()<>{}%]+)\s+Do\b")


def build_signature(page_number: int, text_runs: List[str], image_op_count: int) -> PageSignature:
    """Join text runs with a space and lowercase them."""
    text = " ".join(text_runs)
    return PageSignature(
        page_number=page_number,
        text_lower=text.lower(),
        text_length=len(text),
        image_op_count=image_op_count,
    )


def count_image_paints(
    stream: bytes,
    xobjects: XObjectTable,
    max_depth: int = 8,
) -> int:
    """
    Count image-paint operators in a content stream.
    
    Args:
        stream: Decoded content stream
        xobjects: Image names and form streams reachable from the page
        max_depth: Form nesting limit
        
    Returns:
        Number of inline images plus image XObject paints
    """
    return _count(stream, xobjects, depth=0, max_depth=max_depth, visiting=set())


def _count(stream: bytes, xobjects: XObjectTable, depth: int, max_depth: int, visiting: Set[str]) -> int:
    inline_count = len(_INLINE_IMAGE.findall(stream))
    # Inline image data is binary; drop it before scanning operators
    stripped = _INLINE_IMAGE.sub(b" ", stream)
    
    count = inline_count
    for match in _XOBJECT_PAINT.finditer(stripped):
        name = match.group(1).decode("latin-1")
        if name in xobjects.images:
            count += 1
        elif name in xobjects.forms and depth < max_depth and name not in visiting:
            visiting.add(name)
            count += _count(xobjects.forms[name], xobjects, depth + 1, max_depth, visiting)
            visiting.discard(name)
    return count


class PageContentAnalyzer:
    """
    Produces PageSignatures through the document's RasterBackend.
    
    Usage:
        analyzer = PageContentAnalyzer()
        signatures, skipped = analyzer.analyze_document(doc)
    """
    
    def analyze(self, doc: SourceDocument, page_number: int) -> PageSignature:
        """
        Analyze a single page.
        
        Args:
            doc: Loaded source document
            page_number: 1-indexed page number
            
        Returns:
            PageSignature
            
        Raises:
            AnalysisError: The page's text or operator list cannot be read
        """
        backend = doc.backend
        try:
            page = doc.page(page_number)
            runs = backend.text_runs(page)
            stream = backend.content_stream(page)
            xobjects = backend.xobjects(page)
            image_ops = count_image_paints(stream, xobjects)
        except BackendUnavailable:
            raise
        except Exception as e:
            raise AnalysisError(page_number, f"Page {page_number} could not be analyzed: {e}") from e
        
        signature = build_signature(page_number, runs, image_ops)
        logger.debug(
            f"Page {page_number}: text_length={signature.text_length}, "
            f"image_ops={signature.image_op_count}"
        )
        return signature
    
    def analyze_document(self, doc: SourceDocument) -> Tuple[List[PageSignature], List[int]]:
        """
        Analyze every page in order.
        
        Returns:
            (signatures, skipped page numbers)
        """
        signatures: List[PageSignature] = []
        skipped: List[int] = []
        
        for page_number in range(1, doc.page_count + 1):
            try:
                signatures.append(self.analyze(doc, page_number))
            except AnalysisError as e:
                logger.warning(f"Skipping page {page_number}: {e}")
                skipped.append(page_number)
        
        if skipped:
            logger.warning(f"{len(skipped)} of {doc.page_count} pages could not be analyzed")
        return signatures, skipped


# Singleton instance
_page_analyzer: Optional[PageContentAnalyzer] = None


def get_page_analyzer() -> PageContentAnalyzer:
    """Get or create singleton PageContentAnalyzer instance"""
    global _page_analyzer
    if _page_analyzer is None:
        _page_analyzer = PageContentAnalyzer()
    return _page_analyzer
