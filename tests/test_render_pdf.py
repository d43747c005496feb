from __future__ import annotations

from datetime import date

import fitz  # PyMuPDF
import pytest
from PIL import Image

from certmaker.errors import EncodingError
from certmaker.pipeline.render_pdf import CertificateMetadata, export_pdf, page_size
from certmaker.template import CanvasDimensions


LANDSCAPE = CanvasDimensions(width=1000, height=800)


def _raster(dims: CanvasDimensions = LANDSCAPE) -> Image.Image:
    return Image.new("RGB", dims.pixel_size, (200, 30, 30))


def test_single_page_landscape_document() -> None:
    data = export_pdf(_raster(), LANDSCAPE)
    with fitz.open(stream=data, filetype="pdf") as doc:
        assert doc.page_count == 1
        page = doc.load_page(0)
        assert (page.rect.width, page.rect.height) == (750, 600)
        images = page.get_images(full=True)
        assert len(images) == 1
        bbox = page.get_image_bbox(images[0])
        assert (round(bbox.width), round(bbox.height)) == (750, 600)


def test_portrait_and_fractional_page_sizes() -> None:
    assert page_size(CanvasDimensions(width=600, height=900)) == (450, 675)
    assert page_size(CanvasDimensions(width=1123, height=794)) == (843, 596)
    assert page_size(CanvasDimensions(width=500, height=500)) == (375, 375)


def test_metadata_page_lists_code_and_files() -> None:
    metadata = CertificateMetadata(
        code="cert_abc_123456",
        associated_file_names=["cert_abc_123456/sources/background.png", "signature.jpg"],
        generated_at=date(2026, 3, 14),
    )
    data = export_pdf(_raster(), LANDSCAPE, metadata)
    with fitz.open(stream=data, filetype="pdf") as doc:
        assert doc.page_count == 2
        second = doc.load_page(1)
        assert (second.rect.width, second.rect.height) == (750, 600)
        text = second.get_text()
        assert "Certificate Code: cert_abc_123456" in text
        assert "Generated: 2026-03-14" in text
        assert "1. background.png" in text
        assert "2. signature.jpg" in text
        assert not second.get_images()


def test_metadata_without_files_adds_no_page() -> None:
    data = export_pdf(_raster(), LANDSCAPE, CertificateMetadata(code="cert_x", associated_file_names=[]))
    with fitz.open(stream=data, filetype="pdf") as doc:
        assert doc.page_count == 1


def test_long_manifest_continues_on_more_pages() -> None:
    names = [f"upload_{index:03d}.png" for index in range(60)]
    data = export_pdf(_raster(), LANDSCAPE, CertificateMetadata(code="cert_x", associated_file_names=names))
    with fitz.open(stream=data, filetype="pdf") as doc:
        assert doc.page_count > 2
        text = "".join(doc.load_page(index).get_text() for index in range(1, doc.page_count))
        assert "60. upload_059.png" in text


def test_assembly_failure_raises_encoding_error(monkeypatch) -> None:
    def broken_reader(image):  # noqa: ARG001 - test helper
        raise OSError("cannot read raster")

    monkeypatch.setattr("certmaker.pipeline.render_pdf.ImageReader", broken_reader)
    with pytest.raises(EncodingError):
        export_pdf(_raster(), LANDSCAPE)
