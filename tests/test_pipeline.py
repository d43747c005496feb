from __future__ import annotations

import tempfile
from pathlib import Path
import unittest
from unittest import mock

from sqlmodel import select

from certmaker import config
from certmaker.errors import InvalidCertificateCode, TemplateValidationError
from certmaker.models import Artifact, Certificate, CertificateStatus, get_session, reset_engine
from certmaker.pipeline.qa import inspect_pdf
from certmaker.pipeline.run import generate_certificate, write_certificate
from certmaker.storage import list_associated_files, save_source_file
from certmaker.template import CanvasDimensions, FieldKind, GenerationRequest, Template, TemplateField, TextElement


def _template(**overrides) -> Template:
    values = {
        "id": "course-abc",
        "name": "Course Completion",
        "canvas_dimensions": CanvasDimensions(width=1000, height=800),
        "fields": [
            TemplateField(id="f1", name="name", value="Ada", kind=FieldKind.NAME),
            TemplateField(id="f2", name="course", value="Python 101", kind=FieldKind.COURSE),
        ],
        "elements": [
            TextElement(id="t1", x=100, y=100, width=400, height=60, content="{{name}}", font_size=32),
            TextElement(id="t2", x=100, y=200, width=400, height=40, content="completed {{course}}"),
        ],
    }
    values.update(overrides)
    return Template(**values)


class StaticLister:
    def __init__(self, files):
        self.files = files

    def list_files(self, code: str):
        return list(self.files)


class BrokenLister:
    def list_files(self, code: str):
        raise ConnectionError("file service down")


class PipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.original_out = config.OUT_DIR
        config.set_out_dir(Path(self.temp_dir.name))
        reset_engine()

    def tearDown(self) -> None:
        config.set_out_dir(self.original_out)
        reset_engine()
        self.temp_dir.cleanup()

    def test_generates_single_page_certificate(self) -> None:
        request = GenerationRequest(template=_template(), field_values={"f1": "Grace Hopper"})
        result = generate_certificate(request, code="cert_test_000001")
        self.assertEqual(result.code, "cert_test_000001")
        self.assertEqual(result.filename, "course-completion-grace-hopper.pdf")
        self.assertEqual(result.recipient, "Grace Hopper")
        self.assertEqual(result.page_count, 1)
        self.assertTrue(result.pdf.startswith(b"%PDF"))
        self.assertEqual(inspect_pdf(result.pdf).page_sizes, [(750, 600)])

    def test_metadata_page_from_lister(self) -> None:
        request = GenerationRequest(template=_template(), include_metadata=True)
        result = generate_certificate(request, code="cert_meta", lister=StaticLister(["a.png", "b.pdf"]))
        self.assertEqual(result.page_count, 2)
        text = inspect_pdf(result.pdf).texts[1]
        self.assertIn("a.png", text)
        self.assertIn("b.pdf", text)

    def test_failing_or_empty_lister_skips_metadata_page(self) -> None:
        request = GenerationRequest(template=_template(), include_metadata=True)
        self.assertEqual(generate_certificate(request, lister=BrokenLister()).page_count, 1)
        self.assertEqual(generate_certificate(request, lister=StaticLister([])).page_count, 1)

    def test_metadata_ignored_unless_requested(self) -> None:
        request = GenerationRequest(template=_template(), include_metadata=False)
        result = generate_certificate(request, lister=StaticLister(["a.png"]))
        self.assertEqual(result.page_count, 1)

    def test_invalid_template_fails_before_rendering(self) -> None:
        template = _template(
            canvas_dimensions=CanvasDimensions(width=0, height=800),
            fields=[TemplateField(id="f1", name="Name"), TemplateField(id="f2", name="name")],
        )
        with self.assertRaises(TemplateValidationError) as ctx:
            generate_certificate(GenerationRequest(template=template))
        self.assertEqual(len(ctx.exception.issues), 2)

    def test_unsafe_code_is_rejected_before_rendering(self) -> None:
        request = GenerationRequest(template=_template())
        with mock.patch("certmaker.pipeline.run.compose") as compose:
            with self.assertRaises(InvalidCertificateCode):
                generate_certificate(request, code="../escape")
        compose.assert_not_called()

    def test_background_failure_still_produces_document(self) -> None:
        template = _template(background_image="data:image/png;base64,AAAA")
        result = generate_certificate(GenerationRequest(template=template), code="cert_bg")
        self.assertEqual(result.page_count, 1)
        self.assertEqual([failure.target for failure in result.failures], ["background"])

    def test_stored_sources_feed_the_metadata_page(self) -> None:
        save_source_file("cert_stored", "background image.png", b"\x89PNG fake")
        save_source_file("cert_stored", "../../etc/passwd", b"nope")
        self.assertEqual(
            list_associated_files("cert_stored"),
            ["cert_stored/sources/background-image.png", "cert_stored/sources/passwd"],
        )
        request = GenerationRequest(template=_template(), include_metadata=True)
        result = generate_certificate(request, code="cert_stored")
        text = inspect_pdf(result.pdf).texts[1]
        self.assertIn("1. background-image.png", text)
        self.assertIn("2. passwd", text)

    def test_write_certificate_records_artifacts(self) -> None:
        template = _template()
        result = generate_certificate(GenerationRequest(template=template), code="cert_write")
        path = write_certificate(result, template)
        self.assertEqual(path, Path(self.temp_dir.name) / "cert_write" / "certificate.pdf")
        self.assertEqual(path.read_bytes(), result.pdf)
        self.assertTrue((path.parent / "template.json").exists())
        with get_session() as session:
            certificate = session.exec(select(Certificate).where(Certificate.code == "cert_write")).one()
            artifacts = session.exec(select(Artifact).where(Artifact.certificate_code == "cert_write")).all()
        self.assertEqual(certificate.status, CertificateStatus.READY)
        self.assertEqual(certificate.recipient, "Ada")
        self.assertEqual(sorted(artifact.type for artifact in artifacts), ["pdf", "template"])


if __name__ == "__main__":
    unittest.main()
