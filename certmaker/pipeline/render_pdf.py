from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from typing import Sequence, Tuple

from PIL import Image
from reportlab.lib.pagesizes import landscape, portrait
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .. import config
from ..errors import EncodingError
from ..template import CanvasDimensions


METADATA_FONT = "Helvetica"
METADATA_LEFT = 20
METADATA_LIST_LEFT = 30
METADATA_LINE_GAP = 15
METADATA_BOTTOM_MARGIN = 20


@dataclass(frozen=True)
class CertificateMetadata:
    code: str
    associated_file_names: Sequence[str] = ()
    generated_at: date = field(default_factory=date.today)


def page_size(dims: CanvasDimensions) -> Tuple[float, float]:
    size = (
        float(math.ceil(dims.width * config.PX_TO_PT)),
        float(math.ceil(dims.height * config.PX_TO_PT)),
    )
    return landscape(size) if dims.orientation == "landscape" else portrait(size)


def _fit_font(canv: canvas.Canvas, text: str, font_name: str, base_size: float, max_width: float) -> float:
    """Shrink long lines (file names mostly) until they fit the page width."""
    size = float(base_size)
    while size > 5.0:
        if canv.stringWidth(text, font_name, size) <= max_width:
            return size
        size -= 0.5
    return 5.0


def _basename(path: str) -> str:
    return path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1] or path


def _draw_metadata_pages(canv: canvas.Canvas, metadata: CertificateMetadata, pw: float, ph: float) -> None:
    # positions are measured from the top edge, as in the editor's manifest
    def at(y: float) -> float:
        return ph - y

    canv.setFillColorRGB(0, 0, 0)
    canv.setFont(METADATA_FONT, 16)
    canv.drawString(METADATA_LEFT, at(30), "Certificate Metadata")

    canv.setFont(METADATA_FONT, 12)
    canv.drawString(METADATA_LEFT, at(60), f"Certificate Code: {metadata.code}")
    canv.drawString(METADATA_LEFT, at(80), f"Generated: {metadata.generated_at.isoformat()}")

    canv.setFont(METADATA_FONT, 14)
    canv.drawString(METADATA_LEFT, at(110), "Source Files:")

    y = 130.0
    max_width = pw - METADATA_LIST_LEFT - METADATA_LEFT
    for index, path in enumerate(metadata.associated_file_names, start=1):
        if y > ph - METADATA_BOTTOM_MARGIN:
            canv.showPage()
            y = 30.0
        line = f"{index}. {_basename(path)}"
        canv.setFont(METADATA_FONT, _fit_font(canv, line, METADATA_FONT, 10, max_width))
        canv.drawString(METADATA_LIST_LEFT, at(y), line)
        y += METADATA_LINE_GAP
    canv.showPage()


def export_pdf(
    raster: Image.Image,
    canvas_dimensions: CanvasDimensions,
    metadata: CertificateMetadata | None = None,
) -> bytes:
    """
    Wrap a rendered certificate into a PDF.

    Page 1 is ``ceil(width * 0.75) x ceil(height * 0.75)`` points with the
    raster stretched over the whole page. A manifest page follows when
    metadata with at least one associated file is given.
    """
    pw, ph = page_size(canvas_dimensions)
    buffer = BytesIO()
    try:
        canv = canvas.Canvas(buffer, pagesize=(pw, ph))
        canv.setCreator("certmaker")
        if metadata is not None:
            canv.setSubject(metadata.code)
        canv.drawImage(ImageReader(raster.convert("RGB")), 0, 0, width=pw, height=ph)
        canv.showPage()
        if metadata is not None and metadata.associated_file_names:
            _draw_metadata_pages(canv, metadata, pw, ph)
        canv.save()
    except Exception as exc:
        raise EncodingError(f"PDF assembly failed: {type(exc).__name__}: {exc}") from exc
    return buffer.getvalue()
