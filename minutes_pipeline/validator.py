"""
Schema validation for extraction documents.

A document either passes every check or fails as a whole; there is no partial pass.
"""

from typing import Any

from jsonschema import Draft7Validator, ValidationError

from .errors import ValidationFailure
from .models import ValidationIssue, ValidationResult
from .schema import EXTRACTION_SCHEMA


class DocumentValidator:
    """Validates candidate documents against the extraction schema."""

    def __init__(self, schema: dict = EXTRACTION_SCHEMA):
        Draft7Validator.check_schema(schema)
        self._validator = Draft7Validator(schema)

    def validate(self, document: Any) -> ValidationResult:
        """
        Validate a candidate document.

        Args:
            document: Candidate extraction document (parsed JSON)

        Returns:
            ValidationResult with every violation found
        """
        issues = [self._format_error(error) for error in self._validator.iter_errors(document)]
        if isinstance(document, dict):
            issues.extend(self._duplicate_ids(document))

        issues.sort(key=lambda issue: issue.path)
        return ValidationResult(valid=not issues, errors=issues)

    def ensure_valid(self, document: Any) -> None:
        """Raise ValidationFailure unless the document is valid."""
        result = self.validate(document)
        if not result.valid:
            raise ValidationFailure(
                f"{len(result.errors)} validation error(s)",
                issues=result.errors,
            )

    def _format_error(self, error: ValidationError) -> ValidationIssue:
        return ValidationIssue(
            path=".".join(str(p) for p in error.absolute_path),
            message=error.message,
        )

    def _duplicate_ids(self, document: dict) -> list[ValidationIssue]:
        """Budget and action ids share one namespace within a document."""
        issues = []
        seen = set()
        for section in ("budgets", "actions"):
            items = document.get(section)
            if not isinstance(items, list):
                continue
            for index, item in enumerate(items):
                if not isinstance(item, dict) or not isinstance(item.get("id"), str):
                    continue
                if item["id"] in seen:
                    issues.append(ValidationIssue(
                        path=f"{section}.{index}.id",
                        message=f"duplicate id '{item['id']}'",
                    ))
                seen.add(item["id"])
        return issues

