from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Protocol

from sqlmodel import select

from . import config
from .errors import InvalidCertificateCode
from .models import Artifact, get_session, init_db

logger = logging.getLogger(__name__)


ARTIFACT_NAMES = {
    "pdf": "certificate.pdf",
    "preview": "preview.png",
    "template": "template.json",
    "error": "error.log",
}

SOURCE_ARTIFACT = "source"
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class FileLister(Protocol):
    def list_files(self, code: str) -> List[str]:
        """Ordered file names associated with a certificate code."""


def check_code(code: str) -> str:
    if not code or ".." in code or "/" in code or "\\" in code:
        raise InvalidCertificateCode(code)
    return code


def certificate_dir(code: str, base_dir: Path | None = None) -> Path:
    root = base_dir or config.OUT_DIR
    path = root / check_code(code)
    path.mkdir(parents=True, exist_ok=True)
    return path


def artifact_path(code: str, artifact_type: str, base_dir: Path | None = None) -> Path:
    filename = ARTIFACT_NAMES[artifact_type]
    return certificate_dir(code, base_dir=base_dir) / filename


def _relative(path: Path) -> str:
    try:
        return str(path.relative_to(config.OUT_DIR))
    except ValueError:
        return str(path)


def record_artifacts(code: str, artifacts: Iterable[tuple[str, Path]]) -> None:
    init_db()
    with get_session() as session:
        for artifact_type, path in artifacts:
            session.add(Artifact(certificate_code=code, type=artifact_type, path=_relative(path)))
        session.commit()


def save_source_file(code: str, filename: str, data: bytes) -> Path:
    """Store an uploaded source file for a certificate and record it."""
    safe_name = _UNSAFE_NAME.sub("-", Path(filename).name).strip("-.") or "upload"
    sources = certificate_dir(code) / "sources"
    sources.mkdir(parents=True, exist_ok=True)
    path = sources / safe_name
    path.write_bytes(data)
    record_artifacts(code, [(SOURCE_ARTIFACT, path)])
    logger.info("Stored source file %s for %s", safe_name, code)
    return path


def list_associated_files(code: str) -> List[str]:
    init_db()
    with get_session() as session:
        statement = (
            select(Artifact)
            .where(Artifact.certificate_code == code)
            .where(Artifact.type == SOURCE_ARTIFACT)
            .order_by(Artifact.id)
        )
        return [artifact.path for artifact in session.exec(statement)]


class StoredFileLister:
    def list_files(self, code: str) -> List[str]:
        return list_associated_files(code)
