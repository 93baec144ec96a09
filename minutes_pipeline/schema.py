"""
Extraction document schema (JSON Schema, Draft 7) and the closed vocabularies it uses.
"""

CURRENCY = "INR"

STATUSES = ["proposed", "approved", "in-progress", "completed", "unknown"]
PRIORITIES = ["low", "medium", "high"]

DEPARTMENTS = [
    "Water Supply",
    "Roads",
    "Sanitation",
    "Education",
    "Health",
    "Electricity",
    "Revenue",
    "Administration",
    "Other",
]

DEFAULT_DEPARTMENT = "Other"


def _nullable(type_name: str) -> dict:
    return {"type": [type_name, "null"]}


_PAGES = {"type": "array", "items": {"type": "integer", "minimum": 1}}

_MONEY = {
    "type": "object",
    "required": ["amount", "currency"],
    "properties": {
        "amount": {"type": "number", "minimum": 0},
        "currency": {"const": CURRENCY},
        "sourceText": _nullable("string"),
        "pages": _PAGES,
    },
}

_OFFICER = {
    "type": "object",
    "properties": {
        "name": _nullable("string"),
        "title": _nullable("string"),
        "dept": _nullable("string"),
        "contact": _nullable("string"),
        "pages": _PAGES,
    },
}

EXTRACTION_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["meta", "budgets", "actions", "totals", "version"],
    "properties": {
        "shortId": {"type": "string", "minLength": 1},
        "meta": {
            "type": "object",
            "required": ["sourceFileName", "uploadedAt"],
            "properties": {
                "municipality": _nullable("string"),
                "meetingDate": _nullable("string"),
                "meetingType": _nullable("string"),
                "language": {"type": ["array", "null"], "items": {"type": "string"}},
                "sourceFileName": {"type": "string", "minLength": 1},
                "uploadedAt": {"type": "string", "minLength": 1},
            },
        },
        "budgets": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "purpose", "amount"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "purpose": {"type": "string"},
                    "department": _nullable("string"),
                    "amount": _MONEY,
                    "pages": _PAGES,
                    "evidence": _nullable("string"),
                },
            },
        },
        "actions": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "title", "status"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "title": {"type": "string"},
                    "description": _nullable("string"),
                    "department": _nullable("string"),
                    "officer": {"anyOf": [_OFFICER, {"type": "null"}]},
                    "budget": {"anyOf": [_MONEY, {"type": "null"}]},
                    "deadline": _nullable("string"),
                    "status": {"enum": STATUSES},
                    "priority": {"enum": PRIORITIES + [None]},
                    "pages": _PAGES,
                    "evidence": _nullable("string"),
                },
            },
        },
        "contacts": {"type": ["array", "null"], "items": _OFFICER},
        "totals": {
            "type": "object",
            "required": ["budgetTotal", "byDept"],
            "properties": {
                "budgetTotal": {"type": "number", "minimum": 0},
                "byDept": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["department", "total"],
                        "properties": {
                            "department": {"type": "string"},
                            "total": {"type": "number", "minimum": 0},
                        },
                    },
                },
            },
        },
        "errors": {"type": ["array", "null"], "items": {"type": "string"}},
        "version": {"type": "integer", "minimum": 1},
    },
}
