from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Mapping, Optional, Tuple, Union

from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps

from .. import config
from ..errors import DecodeError
from ..template import ImageElement, Template, TextElement
from .images import DefaultImageResolver, ImageResolver, resolve_many
from .substitute import substitute

logger = logging.getLogger(__name__)


class MarkupMode(str, Enum):
    STRIP = "strip"
    LITERAL = "literal"


# CSS family name -> TrueType files to try, in order
FONT_FILES: Dict[str, Tuple[str, ...]] = {
    "arial": ("arial.ttf", "Arial.ttf", "LiberationSans-Regular.ttf", "DejaVuSans.ttf"),
    "helvetica": ("Helvetica.ttf", "LiberationSans-Regular.ttf", "DejaVuSans.ttf"),
    "verdana": ("verdana.ttf", "Verdana.ttf", "DejaVuSans.ttf"),
    "sans-serif": ("DejaVuSans.ttf", "LiberationSans-Regular.ttf"),
    "times new roman": ("times.ttf", "Times New Roman.ttf", "LiberationSerif-Regular.ttf", "DejaVuSerif.ttf"),
    "times": ("times.ttf", "LiberationSerif-Regular.ttf", "DejaVuSerif.ttf"),
    "georgia": ("georgia.ttf", "Georgia.ttf", "DejaVuSerif.ttf"),
    "serif": ("DejaVuSerif.ttf", "LiberationSerif-Regular.ttf"),
    "courier new": ("cour.ttf", "Courier New.ttf", "LiberationMono-Regular.ttf", "DejaVuSansMono.ttf"),
    "courier": ("cour.ttf", "LiberationMono-Regular.ttf", "DejaVuSansMono.ttf"),
    "monospace": ("DejaVuSansMono.ttf", "LiberationMono-Regular.ttf"),
}
_FALLBACK_FONT_FILES: Tuple[str, ...] = ("DejaVuSans.ttf", "LiberationSans-Regular.ttf", "arial.ttf")

_BREAK_TAGS = re.compile(r"<\s*(?:br\s*/?|/p|/div|/h[1-6]|/li)\s*>", re.IGNORECASE)
_TAGS = re.compile(r"<[^>]*>")
_HEX_COLOR = re.compile(r"#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})")

BACKGROUND = "background"


@dataclass(frozen=True)
class RenderFailure:
    target: str
    reference: str
    reason: str


@dataclass
class RenderResult:
    image: Image.Image
    failures: List[RenderFailure] = field(default_factory=list)


def strip_markup(content: str) -> str:
    """Reduce rich-text markup to plain lines: block ends become newlines, other tags drop."""
    text = _BREAK_TAGS.sub("\n", content or "")
    text = html.unescape(_TAGS.sub("", text))
    lines = [" ".join(line.split()) for line in text.splitlines()]
    return "\n".join(lines).strip("\n")


def _font_candidates(family: str) -> List[str]:
    candidates: List[str] = []
    for name in (family or "").split(","):
        name = name.strip().strip("'\"").lower()
        if not name:
            continue
        candidates.extend(FONT_FILES.get(name, (f"{name}.ttf",)))
    candidates.extend(_FALLBACK_FONT_FILES)
    return list(dict.fromkeys(candidates))


@lru_cache(maxsize=256)
def load_font(family: str, size: int) -> Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]:
    for filename in _font_candidates(family):
        for directory in config.FONT_DIRS:
            path = directory / filename
            if path.is_file():
                try:
                    return ImageFont.truetype(str(path), size)
                except OSError:
                    continue
        try:
            # Pillow also searches the platform font directories
            return ImageFont.truetype(filename, size)
        except OSError:
            continue
    logger.warning("No TrueType font found for %r, using Pillow default", family)
    return ImageFont.load_default(size=size)


def parse_color(value: str) -> Tuple[int, int, int]:
    """Parse a ``#RGB`` or ``#RRGGBB`` color. Named colors are rejected."""
    if not isinstance(value, str) or not _HEX_COLOR.fullmatch(value.strip()):
        raise ValueError(f"Expected a hex color, got {value!r}")
    rgb = ImageColor.getrgb(value.strip())
    return rgb[0], rgb[1], rgb[2]


def _safe_color(value: str, element_id: str) -> Tuple[int, int, int]:
    try:
        return parse_color(value)
    except ValueError:
        logger.warning("Element %s has invalid color %r, drawing black", element_id, value)
        return 0, 0, 0


def _fit_font(
    draw: ImageDraw.ImageDraw,
    text: str,
    family: str,
    font_size: float,
    box: Tuple[int, int],
) -> Tuple[Union[ImageFont.FreeTypeFont, ImageFont.ImageFont], Tuple[float, float, float, float]]:
    """Shrink the font until the text block fits the box, stopping at MIN_FONT_SIZE."""
    size = float(font_size)
    while True:
        font = load_font(family, max(1, int(round(size))))
        bbox = draw.multiline_textbbox((0, 0), text, font=font, align="center")
        fits = bbox[2] - bbox[0] <= box[0] and bbox[3] - bbox[1] <= box[1]
        if fits or size <= config.MIN_FONT_SIZE:
            return font, bbox
        size = max(config.MIN_FONT_SIZE, size * 0.9)


def _box(element: Union[TextElement, ImageElement]) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    origin = (int(round(element.x)), int(round(element.y)))
    size = (int(round(element.width)), int(round(element.height)))
    return origin, size


def draw_text(canvas: Image.Image, element: TextElement, text: str) -> None:
    origin, size = _box(element)
    if size[0] <= 0 or size[1] <= 0 or not text.strip():
        return
    color = _safe_color(element.color, element.id)

    # drawing on a box-sized layer clips overflow at the element edges
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font, bbox = _fit_font(draw, text, element.font_family, element.font_size, size)
    left, top, right, bottom = bbox
    x = (size[0] - (right - left)) / 2 - left
    y = (size[1] - (bottom - top)) / 2 - top
    draw.multiline_text((x, y), text, font=font, fill=color + (255,), align="center")
    canvas.paste(layer, origin, layer)


def draw_cover(canvas: Image.Image, element: ImageElement, image: Image.Image) -> None:
    origin, size = _box(element)
    if size[0] <= 0 or size[1] <= 0:
        return
    fitted = ImageOps.fit(image.convert("RGBA"), size, method=Image.Resampling.LANCZOS)
    canvas.paste(fitted, origin, fitted)


def draw_contain(canvas: Image.Image, image: Image.Image) -> None:
    fitted = ImageOps.contain(image.convert("RGBA"), canvas.size, method=Image.Resampling.LANCZOS)
    offset = ((canvas.width - fitted.width) // 2, (canvas.height - fitted.height) // 2)
    canvas.paste(fitted, offset, fitted)


def _text_for(element: TextElement, fields: List[Tuple[str, str]], markup: MarkupMode) -> str:
    text = substitute(element.content, fields)
    if markup == MarkupMode.STRIP:
        return strip_markup(text)
    return text


def compose(
    template: Template,
    field_values: Optional[Mapping[str, str]] = None,
    resolver: Optional[ImageResolver] = None,
    markup: MarkupMode = MarkupMode.STRIP,
    timeout: float = config.IMAGE_DECODE_TIMEOUT,
) -> RenderResult:
    """
    Rasterize a template with field values into an RGB image of the canvas size.

    Images are decoded in parallel up front. Elements are then drawn in
    declaration order, later ones on top. A background or element image that
    fails to decode is logged and recorded in ``failures``; its area stays
    blank and the rest of the certificate is still drawn.
    """
    canvas = Image.new("RGB", template.canvas_dimensions.pixel_size, "white")
    failures: List[RenderFailure] = []
    resolver = resolver or DefaultImageResolver(timeout=timeout)

    references = [template.background_image]
    references.extend(element.source for element in template.elements if isinstance(element, ImageElement))
    decoded = resolve_many(resolver, references, timeout=timeout)

    if template.background_image:
        outcome = decoded[template.background_image]
        if isinstance(outcome, DecodeError):
            failures.append(RenderFailure(BACKGROUND, template.background_image, outcome.reason))
        else:
            draw_contain(canvas, outcome)

    fields = template.resolve_field_values(field_values)
    for element in template.elements:
        if isinstance(element, TextElement):
            draw_text(canvas, element, _text_for(element, fields, markup))
        elif isinstance(element, ImageElement):
            if not element.source:
                continue
            outcome = decoded[element.source]
            if isinstance(outcome, DecodeError):
                failures.append(RenderFailure(element.id, element.source, outcome.reason))
                continue
            draw_cover(canvas, element, outcome)
        else:
            raise TypeError(f"Unknown element type: {type(element).__name__}")

    if failures:
        logger.info("Rendered template %s with %d image failure(s)", template.id, len(failures))
    return RenderResult(image=canvas, failures=failures)


def render(
    template: Template,
    field_values: Optional[Mapping[str, str]] = None,
    resolver: Optional[ImageResolver] = None,
    markup: MarkupMode = MarkupMode.STRIP,
) -> Image.Image:
    return compose(template, field_values, resolver=resolver, markup=markup).image
