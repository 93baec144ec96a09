import json

from conftest import FakeClient
from minutes_pipeline.errors import ExtractFailure
from minutes_pipeline.structurer import StructuredExtractor

PAGED_TEXT = "###PAGE 1###\nWard 12 pipeline sanctioned ₹12,00,000"
UPLOADED_AT = "2024-03-15T10:00:00Z"


def test_extract_reconciles_model_answer(candidate):
    extractor = StructuredExtractor(client=FakeClient(candidate))

    document = extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    assert document["meta"]["sourceFileName"] == "minutes.pdf"
    assert document["totals"]["budgetTotal"] == 1500000
    assert "errors" not in document


def test_code_fences_and_prose_stripped(candidate):
    answer = "Here is the data:\n```json\n" + json.dumps(candidate) + "\n```"
    extractor = StructuredExtractor(client=FakeClient(answer))

    document = extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    assert len(document["budgets"]) == 2


def test_prompt_carries_paged_text_and_file_details():
    client = FakeClient({"budgets": [], "actions": []})
    extractor = StructuredExtractor(client=client)

    extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    prompt = client.prompts[0]
    assert PAGED_TEXT in prompt
    assert "Source file: minutes.pdf" in prompt
    assert UPLOADED_AT in prompt
    assert "validation errors" not in prompt


def test_prior_errors_turn_prompt_into_correction():
    client = FakeClient({"budgets": [], "actions": []})
    extractor = StructuredExtractor(client=client)

    extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT, prior_errors=["budgets.0.amount: required"])

    prompt = client.prompts[0]
    assert prompt.startswith("The previous extraction had validation errors:")
    assert "- budgets.0.amount: required" in prompt
    assert PAGED_TEXT in prompt


def test_invalid_json_degrades_to_error_document():
    extractor = StructuredExtractor(client=FakeClient("I could not find any budgets."))

    document = extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    assert document["budgets"] == []
    assert document["actions"] == []
    assert document["totals"] == {"budgetTotal": 0, "byDept": []}
    assert document["errors"][0].startswith("LLM extraction failed: Invalid JSON response")


def test_client_exception_degrades_to_error_document():
    extractor = StructuredExtractor(client=FakeClient(ConnectionError("timed out")))

    document = extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    assert document["errors"] == ["LLM extraction failed: timed out"]
    assert document["meta"]["sourceFileName"] == "minutes.pdf"


def test_extract_failure_from_client_is_recorded():
    extractor = StructuredExtractor(client=FakeClient(ExtractFailure("No response from structuring service")))

    document = extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    assert document["errors"] == ["LLM extraction failed: No response from structuring service"]


def test_json_array_is_rejected():
    extractor = StructuredExtractor(client=FakeClient("[1, 2, 3]"))

    document = extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    assert document["budgets"] == []
    assert "Invalid JSON response" in document["errors"][0]


def test_non_finite_amounts_rejected(candidate):
    answer = json.dumps(candidate).replace("1200000", "NaN")
    extractor = StructuredExtractor(client=FakeClient(answer))

    document = extractor.extract(PAGED_TEXT, "minutes.pdf", UPLOADED_AT)

    assert document["budgets"] == []
    assert document["totals"]["budgetTotal"] == 0
    assert "non-finite number NaN" in document["errors"][0]
