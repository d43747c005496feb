from __future__ import annotations

from typing import List, Sequence


class CertmakerError(Exception):
    """Base class for every error raised by certmaker."""


class TemplateError(CertmakerError):
    """A template is not fit for rendering. Raised before any drawing starts."""


class InvalidDimensions(TemplateError):
    def __init__(self, width: float, height: float) -> None:
        super().__init__(f"Canvas dimensions must be positive, got {width} x {height}")
        self.width = width
        self.height = height


class SubstitutionAmbiguity(TemplateError):
    def __init__(self, names: Sequence[str]) -> None:
        joined = ", ".join(repr(name) for name in names)
        super().__init__(f"Field names collide ignoring case: {joined}")
        self.names = list(names)


class TemplateValidationError(TemplateError):
    def __init__(self, issues: Sequence[TemplateError]) -> None:
        self.issues: List[TemplateError] = list(issues)
        super().__init__("; ".join(self.messages) or "Template is invalid")

    @property
    def messages(self) -> List[str]:
        return [str(issue) for issue in self.issues]


class DecodeError(CertmakerError):
    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Could not decode image {_short(reference)}: {reason}")
        self.reference = reference
        self.reason = reason


class EncodingError(CertmakerError):
    """PDF assembly failed. Nothing partial is handed back to the caller."""


class InvalidCertificateCode(CertmakerError, ValueError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Invalid certificate code: {code!r}")
        self.code = code


def _short(reference: str, limit: int = 70) -> str:
    if len(reference) <= limit:
        return repr(reference)
    return repr(reference[:limit] + "...")
