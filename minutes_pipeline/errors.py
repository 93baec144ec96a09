"""
Pipeline Error Taxonomy

Fatal stage failures (rasterize, recognize, persist) terminate a run; extract and
validation failures are absorbed into the document's ``errors`` list.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for failures raised by a pipeline stage."""

    stage = "pipeline"

    def __init__(self, message: str, short_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.short_id = short_id

    def to_envelope(self) -> dict:
        """Error payload returned to callers; keeps the shortId when one was minted."""
        return {
            "error": f"{self.stage.capitalize()} failed",
            "details": self.message,
            "shortId": self.short_id,
        }


class RasterizeFailure(PipelineError):
    """The source could not be parsed or produced no pages."""

    stage = "rasterize"


class RecognizeFailure(PipelineError):
    """No page produced usable text."""

    stage = "recognize"


class ExtractFailure(PipelineError):
    """The structuring service failed or returned something that is not JSON."""

    stage = "extract"


class ValidationFailure(PipelineError):
    """A candidate document did not match the extraction schema."""

    stage = "validate"

    def __init__(self, message: str, issues: Optional[list] = None, short_id: Optional[str] = None):
        super().__init__(message, short_id=short_id)
        self.issues = issues or []


class PersistFailure(PipelineError):
    """The document store rejected the upsert; no record exists for the run."""

    stage = "persist"
