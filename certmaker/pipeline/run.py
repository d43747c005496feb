from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from ..errors import EncodingError
from ..models import Certificate, CertificateStatus, get_session, init_db
from ..storage import FileLister, StoredFileLister, artifact_path, check_code, record_artifacts
from ..template import (
    GenerationRequest,
    Template,
    certificate_filename,
    generate_certificate_code,
    to_metadata,
)
from .compose import MarkupMode, RenderFailure, compose
from .images import ImageResolver
from .ingest import field_values_from_row
from .qa import check_pdf, ensure_valid
from .render_pdf import CertificateMetadata, export_pdf, page_size


logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    code: str
    filename: str
    pdf: bytes
    page_count: int
    recipient: Optional[str] = None
    failures: List[RenderFailure] = field(default_factory=list)


def _associated_files(lister: FileLister, code: str) -> List[str]:
    try:
        return list(lister.list_files(code))
    except Exception as exc:
        logger.warning("Could not list files for %s, skipping metadata page: %s", code, exc)
        return []


def generate_certificate(
    request: GenerationRequest,
    code: Optional[str] = None,
    resolver: Optional[ImageResolver] = None,
    lister: Optional[FileLister] = None,
    markup: MarkupMode = MarkupMode.STRIP,
    generated_at: Optional[date] = None,
) -> GenerationResult:
    template = request.template
    ensure_valid(template)
    code = check_code(code or generate_certificate_code())

    rendered = compose(template, request.field_values, resolver=resolver, markup=markup)

    metadata = None
    if request.include_metadata:
        files = _associated_files(lister or StoredFileLister(), code)
        if files:
            metadata = CertificateMetadata(code=code, associated_file_names=files, generated_at=generated_at or date.today())

    pdf = export_pdf(rendered.image, template.canvas_dimensions, metadata)
    summary = check_pdf(
        pdf,
        page_size(template.canvas_dimensions),
        min_pages=2 if metadata else 1,
        max_pages=None if metadata else 1,
    )
    logger.info("Generated certificate %s from template %s", code, template.id)
    return GenerationResult(
        code=code,
        filename=certificate_filename(template, request.field_values),
        pdf=pdf,
        page_count=summary.page_count,
        recipient=template.recipient(request.field_values),
        failures=rendered.failures,
    )


def _write_atomic(path: Path, data: bytes) -> None:
    temp_path = path.with_name(path.name + ".tmp")
    temp_path.write_bytes(data)
    temp_path.replace(path)


def write_certificate(result: GenerationResult, template: Template) -> Path:
    """Write the PDF and a template snapshot under the certificate's directory and record both."""
    init_db()
    pdf_path = artifact_path(result.code, "pdf")
    _write_atomic(pdf_path, result.pdf)
    snapshot_path = artifact_path(result.code, "template")
    snapshot = json.dumps(to_metadata(template, include_background=False), indent=2)
    _write_atomic(snapshot_path, snapshot.encode("utf-8"))

    with get_session() as session:
        session.add(
            Certificate(
                code=result.code,
                template_id=template.id,
                template_name=template.name,
                recipient=result.recipient,
                status=CertificateStatus.READY,
            )
        )
        session.commit()
    record_artifacts(result.code, [("pdf", pdf_path), ("template", snapshot_path)])
    return pdf_path


def _write_error(code: str, message: str) -> None:
    error_path = artifact_path(code, "error")
    error_path.write_text(message, encoding="utf-8")


def _record_failure(code: str, template: Template, values: Mapping[str, str], fail_code: str, detail: str) -> None:
    _write_error(code, detail)
    with get_session() as session:
        session.add(
            Certificate(
                code=code,
                template_id=template.id,
                template_name=template.name,
                recipient=template.recipient(values),
                status=CertificateStatus.FAILED,
                fail_code=fail_code,
                fail_detail=detail,
            )
        )
        session.commit()


def run_batch(
    template: Template,
    rows: Iterable[Mapping[str, str]],
    include_metadata: bool = False,
    resolver: Optional[ImageResolver] = None,
    lister: Optional[FileLister] = None,
    markup: MarkupMode = MarkupMode.STRIP,
) -> dict[str, list[str]]:
    """Generate one certificate per row. A failing row is recorded and the batch carries on."""
    ensure_valid(template)
    init_db()
    results: dict[str, list[str]] = {"READY": [], "FAILED": []}
    for row in rows:
        code = generate_certificate_code()
        values = field_values_from_row(template, row)
        request = GenerationRequest(template=template, field_values=values, include_metadata=include_metadata)
        try:
            result = generate_certificate(request, code=code, resolver=resolver, lister=lister, markup=markup)
            write_certificate(result, template)
        except Exception as exc:
            logger.exception("Certificate generation failed for %s", code)
            fail_code = "ENCODING_ERROR" if isinstance(exc, EncodingError) else "PIPELINE_ERROR"
            _record_failure(code, template, values, fail_code, str(exc))
            results["FAILED"].append(code)
            continue
        results["READY"].append(code)
    return results
