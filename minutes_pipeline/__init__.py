"""
Meeting-Minutes Extraction Pipeline Package
"""

from .errors import (
    PipelineError,
    RasterizeFailure,
    RecognizeFailure,
    ExtractFailure,
    ValidationFailure,
    PersistFailure,
)
from .models import PageImage, PageText, ValidationIssue, ValidationResult
from .rasterizer import PDFRasterizer, rasterize
from .recognizer import Recognizer, TesseractWorker, build_paged_text, detect_tables
from .reconciler import compute_totals, reconcile
from .structurer import StructuredExtractor
from .validator import DocumentValidator
from .store import JsonFileStore, MemoryStore
from .storage import LocalBlobStore
from .orchestrator import ExtractionPipeline, RunResult, Stage

__all__ = [
    "PipelineError",
    "RasterizeFailure",
    "RecognizeFailure",
    "ExtractFailure",
    "ValidationFailure",
    "PersistFailure",
    "PageImage",
    "PageText",
    "ValidationIssue",
    "ValidationResult",
    "PDFRasterizer",
    "rasterize",
    "Recognizer",
    "TesseractWorker",
    "build_paged_text",
    "detect_tables",
    "compute_totals",
    "reconcile",
    "StructuredExtractor",
    "DocumentValidator",
    "JsonFileStore",
    "MemoryStore",
    "LocalBlobStore",
    "ExtractionPipeline",
    "RunResult",
    "Stage",
]
