"""
Unit Tests for DocumentLoader and the first-page preview
"""
import io
import time

import pytest
from PyPDF2 import PdfWriter

from workpack.engine import document_loader
from workpack.engine.document_loader import DocumentLoader, read_package_preview, recover_pdf_bytes
from workpack.engine.errors import BackendUnavailable, ParseError, ParseErrorReason
from workpack.engine.pdf_backend import UnavailableBackend, load_raster_backend


def blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class TestLoad:
    
    def test_load_real_pdf(self, build_pdf):
        data = build_pdf([("one", 0), ("two", 1), ("three", 0)])
        doc = DocumentLoader(load_raster_backend()).load(data, source_path="job.pdf")
        try:
            assert doc.page_count == 3
            assert doc.source_path == "job.pdf"
            assert not doc.repaired
        finally:
            doc.close()
    
    def test_garbage_bytes_raise_parse_error(self):
        with pytest.raises(ParseError):
            DocumentLoader(load_raster_backend()).load(b"this is not a pdf at all")
    
    def test_empty_bytes_are_corrupt(self, fake_backend):
        with pytest.raises(ParseError) as exc_info:
            DocumentLoader(fake_backend([])).load(b"")
        assert exc_info.value.reason == ParseErrorReason.CORRUPT
    
    def test_zero_pages_is_empty(self, fake_backend):
        backend = fake_backend([])
        with pytest.raises(ParseError) as exc_info:
            DocumentLoader(backend).load(b"%PDF-1.4")
        assert exc_info.value.reason == ParseErrorReason.EMPTY
        assert backend.closed == 1
    
    def test_lenient_recovery(self, fake_backend, make_text_page):
        backend = fake_backend([make_text_page("one"), make_text_page("two")], open_failures=1)
        doc = DocumentLoader(backend).load(blank_pdf(2))
        assert doc.repaired
        assert doc.page_count == 2
        assert backend.open_calls == 2
    
    def test_recovery_failure_is_corrupt(self, fake_backend, make_text_page):
        backend = fake_backend([make_text_page("one")], open_failures=5)
        with pytest.raises(ParseError) as exc_info:
            DocumentLoader(backend).load(b"%PDF-1.4 truncated garbage")
        assert exc_info.value.reason == ParseErrorReason.CORRUPT
    
    def test_reopen_failure_after_recovery_is_corrupt(self, fake_backend, make_text_page):
        backend = fake_backend([make_text_page("one")], open_failures=2)
        with pytest.raises(ParseError) as exc_info:
            DocumentLoader(backend).load(blank_pdf(1))
        assert exc_info.value.reason == ParseErrorReason.CORRUPT
    
    def test_unavailable_backend(self):
        with pytest.raises(BackendUnavailable):
            DocumentLoader(UnavailableBackend("libmupdf missing")).load(blank_pdf())
    
    def test_load_missing_file(self, fake_backend, tmp_path):
        with pytest.raises(ParseError):
            DocumentLoader(fake_backend([])).load_file(str(tmp_path / "missing.pdf"))
    
    def test_page_is_one_indexed(self, load_fake_document, make_text_page):
        doc = load_fake_document([make_text_page("first"), make_text_page("second")])
        assert doc.page(1).text == "first"
        with pytest.raises(IndexError):
            doc.page(0)
        with pytest.raises(IndexError):
            doc.page(3)
    
    def test_close_is_idempotent(self, fake_backend, make_text_page):
        backend = fake_backend([make_text_page("one")])
        with DocumentLoader(backend).load(b"%PDF") as doc:
            pass
        doc.close()
        assert backend.closed == 1


class TestRecoverPdfBytes:
    
    def test_valid_pdf_reserialised(self):
        assert recover_pdf_bytes(blank_pdf(3)).startswith(b"%PDF")
    
    def test_garbage_returns_none(self):
        assert recover_pdf_bytes(b"definitely not a pdf") is None


class TestPackagePreview:
    
    def test_large_file_uses_filename(self, tmp_path):
        path = tmp_path / "big.pdf"
        path.write_bytes(b"x" * 100)
        preview = read_package_preview(str(path), "PM 35440499.pdf", full_parse_max_bytes=10)
        assert preview.source == "filename"
        assert preview.text == "PM 35440499.pdf"
    
    def test_first_page_text(self, tmp_path, build_pdf):
        path = tmp_path / "package.pdf"
        path.write_bytes(build_pdf([("Face Sheet PM 35440499", 0), ("Second page", 0)]))
        preview = read_package_preview(str(path), "package.pdf")
        assert preview.source == "first_page"
        assert "35440499" in preview.text
        assert "Second page" not in preview.text
    
    def test_truncated(self, tmp_path, build_pdf):
        path = tmp_path / "package.pdf"
        path.write_bytes(build_pdf([("Face Sheet PM 35440499", 0)]))
        preview = read_package_preview(str(path), "package.pdf", max_chars=4)
        assert len(preview.text) == 4
    
    def test_parse_error_uses_filename(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"garbage")
        preview = read_package_preview(str(path), "broken.pdf")
        assert preview.source == "filename"
    
    def test_timeout_uses_filename(self, tmp_path, monkeypatch):
        path = tmp_path / "slow.pdf"
        path.write_bytes(b"%PDF-1.4")
        
        def slow_parse(pdf_path):
            time.sleep(1.0)
            return "never used"
        
        monkeypatch.setattr(document_loader, "_first_page_text", slow_parse)
        started = time.monotonic()
        preview = read_package_preview(str(path), "slow.pdf", timeout_seconds=0.1)
        
        assert preview.source == "filename"
        assert time.monotonic() - started < 0.9
    
    def test_missing_file_without_filename(self, tmp_path):
        preview = read_package_preview(str(tmp_path / "missing.pdf"))
        assert preview.source == "empty"
        assert preview.text == ""
