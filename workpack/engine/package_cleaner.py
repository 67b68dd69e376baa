"""
Package Cleaner

Writes a copy of the job package without the photo pages that were just
extracted, so the package kept on the job holds only the remaining
as-built material.
"""
import logging
import os
from typing import Iterable, Optional

from workpack.engine.document_loader import SourceDocument
from workpack.models.extraction import CleanedPackage

logger = logging.getLogger(__name__)


def cleaned_package_name(source_name: str) -> str:
    """job_package.pdf -> job_package_cleaned.pdf"""
    stem, _ext = os.path.splitext(os.path.basename(source_name) or "package.pdf")
    return f"{stem}_cleaned.pdf"


class PackageCleaner:
    """
    Removes pages from a loaded package through its RasterBackend.
    
    Usage:
        cleaned = PackageCleaner().strip_pages(doc, [3, 5], output_dir, "job_package.pdf")
    """
    
    def strip_pages(
        self,
        doc: SourceDocument,
        page_numbers: Iterable[int],
        output_dir: str,
        source_name: str,
    ) -> Optional[CleanedPackage]:
        """
        Save the package minus ``page_numbers``.
        
        Must run after every page of ``doc`` has been rendered: the
        document handle is reduced in place.
        
        Args:
            doc: Loaded package
            page_numbers: 1-indexed pages to drop (out-of-range numbers ignored)
            output_dir: Directory receiving the cleaned copy
            source_name: Filename of the original package
        
        Returns:
            CleanedPackage with a local path, or None when nothing would be
            removed or nothing would remain
        """
        remove = sorted({n for n in page_numbers if 1 <= n <= doc.page_count})
        if not remove:
            return None
        
        remaining = doc.page_count - len(remove)
        if remaining <= 0:
            logger.info(f"All {doc.page_count} pages are photos; package left as is")
            return None
        
        data = doc.backend.export_without_pages(doc.handle, remove)
        
        name = cleaned_package_name(source_name)
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, name)
        with open(path, "wb") as f:
            f.write(data)
        
        logger.info(
            f"Cleaned package {name}: {remaining} pages "
            f"(removed photo pages {remove})"
        )
        return CleanedPackage(name=name, pages_removed=remove, page_count=remaining, path=path)
