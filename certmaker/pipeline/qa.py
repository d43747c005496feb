from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import fitz  # PyMuPDF

from ..errors import (
    EncodingError,
    InvalidDimensions,
    SubstitutionAmbiguity,
    TemplateError,
    TemplateValidationError,
)
from ..template import Template, TextElement
from .compose import parse_color
from .substitute import unbound_placeholders

logger = logging.getLogger(__name__)


# size check tolerance in points
PAGE_SIZE_TOLERANCE = 0.5


def _duplicates(values: List[str]) -> List[str]:
    seen = set()
    dupes: List[str] = []
    for value in values:
        if value in seen and value not in dupes:
            dupes.append(value)
        seen.add(value)
    return dupes


def collect_issues(template: Template) -> List[TemplateError]:
    issues: List[TemplateError] = []
    if not template.name.strip():
        issues.append(TemplateError("Template name is required"))

    dims = template.canvas_dimensions
    if not dims.is_valid:
        issues.append(InvalidDimensions(dims.width, dims.height))

    by_folded: Dict[str, List[str]] = {}
    for field in template.fields:
        if not field.name.strip():
            issues.append(TemplateError(f"Field {field.id!r} has an empty name"))
            continue
        by_folded.setdefault(field.name.casefold(), []).append(field.name)
    for names in by_folded.values():
        if len(names) > 1:
            issues.append(SubstitutionAmbiguity(names))

    for dupe in _duplicates([field.id for field in template.fields]):
        issues.append(TemplateError(f"Duplicate field id: {dupe}"))
    for dupe in _duplicates([element.id for element in template.elements]):
        issues.append(TemplateError(f"Duplicate element id: {dupe}"))

    for element in template.elements:
        if isinstance(element, TextElement):
            try:
                parse_color(element.color)
            except ValueError:
                issues.append(TemplateError(f"Element {element.id!r} has an invalid color: {element.color!r}"))
    return issues


def validate_template(template: Template) -> List[str]:
    return [str(issue) for issue in collect_issues(template)]


def ensure_valid(template: Template) -> None:
    issues = collect_issues(template)
    if issues:
        raise TemplateValidationError(issues)


def unbound_tokens(template: Template) -> Dict[str, List[str]]:
    """Placeholders per text element that no field will fill. Left verbatim when rendering."""
    names = [field.name for field in template.fields]
    unbound: Dict[str, List[str]] = {}
    for element in template.elements:
        if isinstance(element, TextElement):
            tokens = unbound_placeholders(element.content, names)
            if tokens:
                unbound[element.id] = tokens
    return unbound


@dataclass(frozen=True)
class PdfSummary:
    page_count: int
    page_sizes: List[Tuple[float, float]]
    texts: List[str]


def inspect_pdf(data: bytes) -> PdfSummary:
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            sizes = [(page.rect.width, page.rect.height) for page in doc]
            texts = [page.get_text() for page in doc]
            return PdfSummary(page_count=doc.page_count, page_sizes=sizes, texts=texts)
    except (RuntimeError, ValueError) as exc:
        raise EncodingError(f"Generated PDF cannot be opened: {exc}") from exc


def check_pdf(
    data: bytes,
    expected_size: Tuple[float, float],
    min_pages: int = 1,
    max_pages: Optional[int] = None,
) -> PdfSummary:
    summary = inspect_pdf(data)
    if summary.page_count < min_pages or (max_pages is not None and summary.page_count > max_pages):
        raise EncodingError(
            f"Generated PDF has {summary.page_count} page(s), expected {min_pages} to {max_pages or 'any'}"
        )
    width, height = summary.page_sizes[0]
    if abs(width - expected_size[0]) > PAGE_SIZE_TOLERANCE or abs(height - expected_size[1]) > PAGE_SIZE_TOLERANCE:
        raise EncodingError(
            f"Generated PDF page is {width:.1f}x{height:.1f}pt, expected {expected_size[0]:.1f}x{expected_size[1]:.1f}pt"
        )
    logger.info("PDF check passed: %d page(s), %.0fx%.0fpt", summary.page_count, width, height)
    return summary
