from __future__ import annotations

import pytest

from certmaker.storage import certificate_dir, save_source_file
from certmaker.template import Template, certificate_filename, generate_template_id


@pytest.mark.parametrize("code", ["../x", "a/b", "a\\b", ""])
def test_certificate_dir_rejects_unsafe_codes(out_dir, code: str) -> None:
    with pytest.raises(ValueError):
        certificate_dir(code)


def test_source_file_names_are_sanitized(out_dir) -> None:
    path = save_source_file("cert_abc", "My Logo (final)!.png", b"data")
    assert path == out_dir / "cert_abc" / "sources" / "My-Logo-final-.png"
    assert save_source_file("cert_abc", "...", b"data").name == "upload"


def test_filenames_and_ids_are_slugs() -> None:
    template = Template(id="t", name="Budget / Award: 2025!")
    assert certificate_filename(template) == "budget-award-2025-certificate.pdf"
    assert generate_template_id("Budget / Award: 2025!").startswith("budget-award-2025-")
