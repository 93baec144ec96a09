"""
Extraction Pipeline Orchestrator
Drives Rasterize -> Recognize -> Extract -> Validate -> Persist for one document.
"""

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import MAX_EXTRACT_ATTEMPTS, PAGE_LIMIT, SHORT_ID_LENGTH
from .errors import PersistFailure, PipelineError, RasterizeFailure, RecognizeFailure, ValidationFailure
from .models import PageImage
from .rasterizer import rasterize
from .recognizer import Recognizer, build_paged_text
from .reconciler import empty_document
from .store import DocumentStore
from .structurer import StructuredExtractor
from .validator import DocumentValidator


console = Console()

_SHORT_ID_ALPHABET = string.ascii_letters + string.digits + "_-"


class Stage(str, Enum):
    RASTERIZE = "rasterize"
    RECOGNIZE = "recognize"
    EXTRACT = "extract"
    VALIDATE = "validate"
    PERSIST = "persist"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class StageRecord:
    """One visited stage."""
    stage: Stage
    duration_ms: float
    detail: str = ""


@dataclass
class RunResult:
    """Outcome of one run; ``document`` is exactly what was persisted."""
    short_id: str
    state: Stage
    document: dict
    attempts: int = 0
    pages: int = 0
    processing_time_ms: float = 0.0
    history: list[StageRecord] = field(default_factory=list)
    fatal_error: Optional[PipelineError] = None

    @property
    def succeeded(self) -> bool:
        return self.state == Stage.SUCCEEDED

    def summary(self) -> dict:
        """Success summary: counts, totals and the shortId."""
        errors = self.document.get("errors") or []
        return {
            "shortId": self.short_id,
            "processingTime": round(self.processing_time_ms),
            "summary": {
                "pages": self.pages,
                "budgetItems": _count(self.document.get("budgets")),
                "actionItems": _count(self.document.get("actions")),
                "totalBudget": self.document.get("totals", {}).get("budgetTotal", 0),
                "errors": len(errors),
            },
            "message": "Extraction completed successfully" if self.succeeded else "Extraction completed with errors",
        }

    def envelope(self) -> dict:
        """Error envelope for runs that hit a fatal stage failure."""
        if self.fatal_error is not None:
            payload = self.fatal_error.to_envelope()
        else:
            payload = {
                "error": "Extraction completed with errors",
                "details": "; ".join(self.document.get("errors") or []),
                "shortId": self.short_id,
            }
        payload["processingTime"] = round(self.processing_time_ms)
        return payload


def mint_short_id(length: int = SHORT_ID_LENGTH) -> str:
    """URL-safe random identifier for sharing a result."""
    return "".join(secrets.choice(_SHORT_ID_ALPHABET) for _ in range(length))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ExtractionPipeline:
    """
    Main pipeline orchestrator.

    Every run ends with exactly one document upserted under its shortId:
    1. Rasterize the PDF (fatal on failure)
    2. Recognize page text (fatal if no page has text)
    3. Extract a candidate document with the LLM
    4. Validate; on failure retry Extract once with the validation errors
    5. Persist the document, or a minimal failure document
    """

    def __init__(
        self,
        store: DocumentStore,
        extractor: Optional[StructuredExtractor] = None,
        recognizer: Optional[Recognizer] = None,
        validator: Optional[DocumentValidator] = None,
        rasterize_fn: Callable[[bytes, int], list[PageImage]] = rasterize,
        page_limit: int = PAGE_LIMIT,
        verbose: bool = True,
    ):
        self.store = store
        self.extractor = extractor if extractor is not None else StructuredExtractor()
        self.recognizer = recognizer if recognizer is not None else Recognizer()
        self.validator = validator if validator is not None else DocumentValidator()
        self.rasterize_fn = rasterize_fn
        self.page_limit = page_limit
        self.max_attempts = MAX_EXTRACT_ATTEMPTS
        self.verbose = verbose
        self.console = console if verbose else Console(quiet=True)

    def run(
        self,
        pdf_bytes: bytes,
        source_file_name: str,
        short_id: Optional[str] = None,
        uploaded_at: Optional[str] = None,
    ) -> RunResult:
        """
        Process one document end to end.

        Args:
            pdf_bytes: Raw PDF content
            source_file_name: Name recorded in the document's meta
            short_id: Reuse an id (re-runs replace the stored document)
            uploaded_at: ISO timestamp, defaults to now

        Returns:
            RunResult describing the persisted document

        Raises:
            PersistFailure: the document could not be stored
        """
        # Minted first so that every failure below has an id to be recorded under
        short_id = short_id or mint_short_id()
        uploaded_at = uploaded_at or utc_now_iso()
        start = time.time()
        history: list[StageRecord] = []
        pages: list[PageImage] = []
        attempts = 0
        fatal_error: Optional[PipelineError] = None

        self.console.print(Panel(f"[bold]Extracting {source_file_name}[/]  [dim]shortId={short_id}[/]", expand=False))

        try:
            with self.console.status("[bold green]Rasterizing pages..."):
                stage_start = time.time()
                pages = self.rasterize_fn(pdf_bytes, self.page_limit)
                if not pages:
                    raise RasterizeFailure("No pages could be extracted from PDF")
            history.append(StageRecord(Stage.RASTERIZE, _elapsed(stage_start), f"{len(pages)} page(s)"))

            with self.console.status("[bold green]Recognizing text..."):
                stage_start = time.time()
                page_texts = self.recognizer.recognize(pages)
                paged_text = build_paged_text(page_texts)
            failed_pages = [p.page for p in page_texts if p.error]
            detail = f"{len(paged_text)} chars"
            if failed_pages:
                detail += f", OCR failed on page(s) {failed_pages}"
            history.append(StageRecord(Stage.RECOGNIZE, _elapsed(stage_start), detail))

        except (RasterizeFailure, RecognizeFailure) as e:
            e.short_id = short_id
            fatal_error = e
            history.append(StageRecord(Stage(e.stage), _elapsed(stage_start), e.message))
            self.console.print(f"  [bold red]✗ {e.stage.capitalize()} failed:[/] {e.message}")
            document = empty_document(source_file_name, uploaded_at, [e.message])
        else:
            document, attempts = self._extract_and_validate(paged_text, source_file_name, uploaded_at, history)

        document = {"shortId": short_id, **{k: v for k, v in document.items() if k != "shortId"}}

        stage_start = time.time()
        self._persist(document, short_id)
        history.append(StageRecord(Stage.PERSIST, _elapsed(stage_start)))

        state = Stage.SUCCEEDED if not document.get("errors") else Stage.FAILED
        history.append(StageRecord(state, 0.0))

        result = RunResult(
            short_id=short_id,
            state=state,
            document=document,
            attempts=attempts,
            pages=len(pages),
            processing_time_ms=_elapsed(start),
            history=history,
            fatal_error=fatal_error,
        )
        self._print_summary(result)
        return result

    def _extract_and_validate(
        self,
        paged_text: str,
        source_file_name: str,
        uploaded_at: str,
        history: list[StageRecord],
    ) -> tuple[dict, int]:
        """Extract, validate, and retry once with the validation errors as feedback."""
        prior_errors: Optional[list[str]] = None

        for attempt in range(1, self.max_attempts + 1):
            self.console.print(f"\n  [cyan]Extraction attempt {attempt}/{self.max_attempts}[/]")

            with self.console.status("  [bold green]Structuring with LLM..."):
                stage_start = time.time()
                candidate = self.extractor.extract(paged_text, source_file_name, uploaded_at, prior_errors)
            history.append(StageRecord(
                Stage.EXTRACT,
                _elapsed(stage_start),
                f"{_count(candidate.get('budgets'))} budget(s), {_count(candidate.get('actions'))} action(s)",
            ))

            stage_start = time.time()
            try:
                self.validator.ensure_valid(candidate)
            except ValidationFailure as e:
                prior_errors = [str(issue) for issue in e.issues]
                history.append(StageRecord(Stage.VALIDATE, _elapsed(stage_start), e.message))
                self.console.print(f"  [yellow]⚠ Validation failed ({e.message})[/]")
                for error in prior_errors[:3]:
                    self.console.print(f"    [dim]• {error}[/]")
                if attempt < self.max_attempts:
                    self.console.print("  [yellow]→ Retrying with validation feedback...[/]")
                continue

            history.append(StageRecord(Stage.VALIDATE, _elapsed(stage_start), "valid"))
            self.console.print("  [green]✓ Document passed validation[/]")
            return candidate, attempt

        self.console.print("  [red]✗ Validation still failing after retry, recording errors[/]")
        return empty_document(source_file_name, uploaded_at, prior_errors), self.max_attempts

    def _persist(self, document: dict, short_id: str):
        try:
            self.store.upsert(document)
        except PersistFailure as e:
            e.short_id = short_id
            raise
        except Exception as e:
            raise PersistFailure(f"Failed to save document {short_id}: {e}", short_id=short_id) from e

    def _print_summary(self, result: RunResult):
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Metric", style="dim")
        table.add_column("Value", justify="right")

        summary = result.summary()["summary"]
        table.add_row("Pages", str(summary["pages"]))
        table.add_row("Budget items", str(summary["budgetItems"]))
        table.add_row("Action items", str(summary["actionItems"]))
        table.add_row("Total budget (INR)", f"{summary['totalBudget']:,}")
        table.add_row("Attempts", str(result.attempts))
        table.add_row("Errors", str(summary["errors"]))

        status = "[green]✓ Succeeded[/]" if result.succeeded else "[red]✗ Failed[/]"
        self.console.print(f"\n  {status} [dim]({result.processing_time_ms:.0f}ms)[/]")
        self.console.print(table)


def _elapsed(start: float) -> float:
    return (time.time() - start) * 1000


def _count(items) -> int:
    return len(items) if isinstance(items, list) else 0
