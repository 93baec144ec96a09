"""
Pipeline data containers.

The extraction document itself stays a plain dict shaped like the persisted record;
these dataclasses carry the intermediate artifacts between stages.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class PageImage:
    """A rasterized page."""
    page_number: int  # 1-based
    buffer: bytes  # PNG bytes
    width: int
    height: int


@dataclass
class OcrOutput:
    """Raw result from one OCR worker call."""
    text: str
    confidence: float
    words: list[dict] = field(default_factory=list)


@dataclass
class PageText:
    """Recognized text for one page."""
    page: int
    text: str
    confidence: float = 0.0
    words: list[dict] = field(default_factory=list)  # {text, confidence, bbox}
    tables: list[list[list[str]]] = field(default_factory=list)  # blocks of rows of cells
    error: Optional[str] = None

    @property
    def usable(self) -> bool:
        return self.error is None and bool(self.text.strip())


@dataclass
class ValidationIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [str(issue) for issue in self.errors]
