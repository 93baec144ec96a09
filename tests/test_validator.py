import pytest

from minutes_pipeline.errors import ValidationFailure
from minutes_pipeline.reconciler import empty_document, reconcile
from minutes_pipeline.validator import DocumentValidator


@pytest.fixture
def validator():
    return DocumentValidator()


@pytest.fixture
def document(candidate):
    return reconcile(candidate, "minutes.pdf", "2024-03-15T10:00:00Z")


def test_reconciled_document_is_valid(validator, document):
    result = validator.validate(document)

    assert result.valid, result.messages
    assert result.errors == []


def test_empty_document_with_errors_is_valid(validator):
    assert validator.validate(empty_document("minutes.pdf", "2024-03-15T10:00:00Z", ["boom"])).valid


def test_wrong_currency_reported_with_path(validator, document):
    document["budgets"][0]["amount"]["currency"] = "USD"

    result = validator.validate(document)

    assert not result.valid
    assert [issue.path for issue in result.errors] == ["budgets.0.amount.currency"]


def test_missing_required_fields(validator, document):
    del document["totals"]
    del document["actions"][0]["title"]

    paths = {issue.path for issue in validator.validate(document).errors}

    assert paths == {"", "actions.0"}


def test_negative_amount_and_bad_status(validator, document):
    document["budgets"][1]["amount"]["amount"] = -5
    document["actions"][0]["status"] = "maybe"

    messages = validator.validate(document).messages

    assert len(messages) == 2
    assert any(m.startswith("actions.0.status") for m in messages)
    assert any(m.startswith("budgets.1.amount.amount") for m in messages)


def test_duplicate_ids_across_sections(validator, document):
    document["actions"][0]["id"] = document["budgets"][0]["id"]

    result = validator.validate(document)

    assert not result.valid
    assert result.errors[0].path == "actions.0.id"
    assert "duplicate id" in result.errors[0].message


def test_non_object_document(validator):
    result = validator.validate(["not", "a", "document"])

    assert not result.valid
    assert str(result.errors[0]).startswith("<root>:")


def test_ensure_valid_raises_with_issues(validator, document):
    document["version"] = 0

    with pytest.raises(ValidationFailure) as exc_info:
        validator.ensure_valid(document)

    assert exc_info.value.message == "1 validation error(s)"
    assert exc_info.value.issues[0].path == "version"
