import pytest

from conftest import FakeClient, make_pages, make_pdf
from minutes_pipeline.errors import PersistFailure, RasterizeFailure
from minutes_pipeline.orchestrator import ExtractionPipeline, Stage, mint_short_id
from minutes_pipeline.recognizer import Recognizer
from minutes_pipeline.store import MemoryStore
from minutes_pipeline.structurer import StructuredExtractor

UPLOADED_AT = "2024-03-15T10:00:00Z"


class BrokenStore(MemoryStore):
    def upsert(self, document):
        raise OSError("disk full")


def build_pipeline(fake_worker, client, store=None, pages=None, **kwargs):
    pages = pages if pages is not None else make_pages("Ward 12 pipeline ₹12,00,000", "Street lights ₹3,00,000")
    calls = []

    def rasterize_fn(pdf_bytes, page_limit):
        calls.append(page_limit)
        return pages[:page_limit]

    pipeline = ExtractionPipeline(
        store=store if store is not None else MemoryStore(),
        extractor=StructuredExtractor(client=client),
        recognizer=Recognizer(languages="eng", worker_factory=fake_worker),
        rasterize_fn=rasterize_fn,
        verbose=False,
        **kwargs,
    )
    pipeline.rasterize_calls = calls
    return pipeline


def test_successful_run_persists_document(fake_worker, candidate):
    client = FakeClient(candidate)
    pipeline = build_pipeline(fake_worker, client)

    result = pipeline.run(b"%PDF", "minutes.pdf", uploaded_at=UPLOADED_AT)

    assert result.state == Stage.SUCCEEDED
    assert result.attempts == 1
    assert len(result.short_id) == 8
    stored = pipeline.store.get(result.short_id)
    assert stored == result.document
    assert stored["shortId"] == result.short_id
    assert stored["totals"]["budgetTotal"] == 1500000
    assert "###PAGE 1###" in client.prompts[0]
    assert "###PAGE 2###" in client.prompts[0]


def test_summary_counts(fake_worker, candidate):
    pipeline = build_pipeline(fake_worker, FakeClient(candidate))

    summary = pipeline.run(b"%PDF", "minutes.pdf").summary()

    assert summary["message"] == "Extraction completed successfully"
    assert summary["summary"] == {
        "pages": 2,
        "budgetItems": 2,
        "actionItems": 1,
        "totalBudget": 1500000,
        "errors": 0,
    }


def test_validation_failure_retried_with_feedback(fake_worker, candidate):
    broken = {**candidate, "budgets": [{**candidate["budgets"][0]}]}
    del broken["budgets"][0]["purpose"]
    client = FakeClient(broken, candidate)
    pipeline = build_pipeline(fake_worker, client)

    result = pipeline.run(b"%PDF", "minutes.pdf")

    assert result.succeeded
    assert result.attempts == 2
    assert len(client.prompts) == 2
    assert "'purpose' is a required property" in client.prompts[1]
    assert len(result.document["budgets"]) == 2


def test_validation_failing_twice_records_errors(fake_worker, candidate):
    broken = {**candidate, "actions": [{**candidate["actions"][0], "status": "maybe"}]}
    client = FakeClient(broken, broken)
    pipeline = build_pipeline(fake_worker, client)

    result = pipeline.run(b"%PDF", "minutes.pdf")

    assert result.state == Stage.FAILED
    assert result.attempts == 2
    stored = pipeline.store.get(result.short_id)
    assert stored["budgets"] == []
    assert stored["actions"] == []
    assert stored["totals"] == {"budgetTotal": 0, "byDept": []}
    assert stored["errors"][0].startswith("actions.0.status:")
    assert result.envelope()["shortId"] == result.short_id


def test_extraction_failure_not_retried(fake_worker):
    client = FakeClient(ConnectionError("service unavailable"))
    pipeline = build_pipeline(fake_worker, client)

    result = pipeline.run(b"%PDF", "minutes.pdf")

    assert result.state == Stage.FAILED
    assert len(client.prompts) == 1
    assert pipeline.store.get(result.short_id)["errors"] == ["LLM extraction failed: service unavailable"]


def test_zero_pages_fails_rasterize_and_still_persists(fake_worker):
    client = FakeClient()
    pipeline = build_pipeline(fake_worker, client, pages=[])

    result = pipeline.run(b"%PDF", "empty.pdf", uploaded_at=UPLOADED_AT)

    assert result.state == Stage.FAILED
    assert client.prompts == []
    envelope = result.envelope()
    assert envelope["error"] == "Rasterize failed"
    assert envelope["details"] == "No pages could be extracted from PDF"
    assert envelope["shortId"] == result.short_id
    assert pipeline.store.get(result.short_id) == {
        "shortId": result.short_id,
        "meta": {"sourceFileName": "empty.pdf", "uploadedAt": UPLOADED_AT},
        "budgets": [],
        "actions": [],
        "totals": {"budgetTotal": 0, "byDept": []},
        "errors": ["No pages could be extracted from PDF"],
        "version": 1,
    }


def test_unreadable_pdf(fake_worker):
    def rasterize_fn(pdf_bytes, page_limit):
        raise RasterizeFailure("Failed to parse PDF: broken xref")

    pipeline = ExtractionPipeline(
        store=MemoryStore(),
        extractor=StructuredExtractor(client=FakeClient()),
        recognizer=Recognizer(languages="eng", worker_factory=fake_worker),
        rasterize_fn=rasterize_fn,
        verbose=False,
    )

    result = pipeline.run(b"garbage", "broken.pdf")

    assert result.fatal_error.short_id == result.short_id
    assert result.history[0].stage == Stage.RASTERIZE
    assert len(pipeline.store) == 1


def test_no_recognizable_text(fake_worker):
    client = FakeClient()
    pipeline = build_pipeline(fake_worker, client, pages=make_pages("!blur", "!blur"))

    result = pipeline.run(b"%PDF", "scan.pdf")

    assert result.envelope()["error"] == "Recognize failed"
    assert client.prompts == []
    assert pipeline.store.get(result.short_id)["errors"] == ["No text could be extracted from PDF"]


def test_partial_ocr_failure_still_extracts(fake_worker, candidate):
    client = FakeClient(candidate)
    pipeline = build_pipeline(fake_worker, client, pages=make_pages("Ward 12 pipeline", "!torn page"))

    result = pipeline.run(b"%PDF", "minutes.pdf")

    assert result.succeeded
    assert "[OCR Error on page 2: torn page]" in client.prompts[0]


def test_page_limit_passed_to_rasterizer(fake_worker, candidate):
    pipeline = build_pipeline(fake_worker, FakeClient(candidate), page_limit=1)

    result = pipeline.run(b"%PDF", "minutes.pdf")

    assert pipeline.rasterize_calls == [1]
    assert result.pages == 1


def test_rerun_replaces_document(fake_worker, candidate):
    store = MemoryStore()
    first = build_pipeline(fake_worker, FakeClient(candidate), store=store).run(b"%PDF", "minutes.pdf")
    second = build_pipeline(fake_worker, FakeClient(ConnectionError("down")), store=store).run(
        b"%PDF", "minutes.pdf", short_id=first.short_id
    )

    assert len(store) == 1
    assert second.short_id == first.short_id
    assert store.get(first.short_id)["errors"] == ["LLM extraction failed: down"]


def test_persist_failure_carries_short_id(fake_worker, candidate):
    pipeline = build_pipeline(fake_worker, FakeClient(candidate), store=BrokenStore())

    with pytest.raises(PersistFailure) as exc_info:
        pipeline.run(b"%PDF", "minutes.pdf", short_id="abc123XY")

    assert exc_info.value.short_id == "abc123XY"
    assert exc_info.value.to_envelope()["error"] == "Persist failed"


def test_history_visits_stages_in_order(fake_worker, candidate):
    pipeline = build_pipeline(fake_worker, FakeClient(candidate))

    result = pipeline.run(b"%PDF", "minutes.pdf")

    assert [record.stage for record in result.history] == [
        Stage.RASTERIZE,
        Stage.RECOGNIZE,
        Stage.EXTRACT,
        Stage.VALIDATE,
        Stage.PERSIST,
        Stage.SUCCEEDED,
    ]


def test_short_ids_are_url_safe():
    short_id = mint_short_id(32)

    assert len(short_id) == 32
    assert all(c.isalnum() or c in "_-" for c in short_id)


def test_password_protected_pdf_still_persists_failure(fake_worker):
    pipeline = ExtractionPipeline(
        store=MemoryStore(),
        extractor=StructuredExtractor(client=FakeClient()),
        recognizer=Recognizer(languages="eng", worker_factory=fake_worker),
        verbose=False,
    )

    result = pipeline.run(make_pdf(1, password="secret"), "locked.pdf", short_id="locked01")

    assert result.state == Stage.FAILED
    assert result.envelope()["error"] == "Rasterize failed"
    assert pipeline.store.get("locked01")["errors"] == ["PDF is password-protected"]
