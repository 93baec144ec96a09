"""
Reconciler Module

Pure-Python repair pass over the structuring model's output (no LLM):
IDs, status defaults, money normalization and the recomputation of totals.
Totals supplied by the model are always discarded.
"""

import copy
import math
import re
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from config import EVIDENCE_MAX_CHARS
from .schema import CURRENCY, DEFAULT_DEPARTMENT, DEPARTMENTS, PRIORITIES, STATUSES


_DEPARTMENT_ALIASES = {
    "water": "Water Supply",
    "water supply": "Water Supply",
    "water works": "Water Supply",
    "drinking water": "Water Supply",
    "road": "Roads",
    "roads": "Roads",
    "roads and bridges": "Roads",
    "public works": "Roads",
    "pwd": "Roads",
    "sanitation": "Sanitation",
    "solid waste": "Sanitation",
    "solid waste management": "Sanitation",
    "drainage": "Sanitation",
    "sewerage": "Sanitation",
    "education": "Education",
    "school": "Education",
    "schools": "Education",
    "health": "Health",
    "public health": "Health",
    "hospital": "Health",
    "electricity": "Electricity",
    "street lights": "Electricity",
    "street lighting": "Electricity",
    "power": "Electricity",
    "revenue": "Revenue",
    "tax": "Revenue",
    "finance": "Revenue",
    "admin": "Administration",
    "administration": "Administration",
    "general administration": "Administration",
    "other": "Other",
    "misc": "Other",
    "miscellaneous": "Other",
}
_DEPARTMENT_ALIASES.update({name.lower(): name for name in DEPARTMENTS})

_STATUS_ALIASES = {
    "in progress": "in-progress",
    "in_progress": "in-progress",
    "inprogress": "in-progress",
    "ongoing": "in-progress",
    "done": "completed",
    "complete": "completed",
    "sanctioned": "approved",
    "passed": "approved",
    "resolved": "approved",
}

_MULTIPLIERS = {
    "thousand": Decimal(1_000),
    "lakh": Decimal(100_000),
    "lakhs": Decimal(100_000),
    "lac": Decimal(100_000),
    "lacs": Decimal(100_000),
    "crore": Decimal(10_000_000),
    "crores": Decimal(10_000_000),
    "cr": Decimal(10_000_000),
}

_CURRENCY_NOISE = re.compile(r"(₹|\binr\b|\brs\.?|\brupees?\b|/-)", re.IGNORECASE)
_AMOUNT = re.compile(r"^(\d+(?:\.\d+)?)\s*([a-z]+)?\.?$", re.IGNORECASE)
_PAGE_REF = re.compile(r"^\s*(?:p(?:age|g)?\.?\s*)?(\d+)\s*$", re.IGNORECASE)


def parse_amount(value: Any) -> Any:
    """
    Coerce a monetary value to a plain number.

    Accepts numbers and strings such as ``"₹12,00,000"``, ``"Rs. 5,000/-"`` or
    ``"1.5 crore"``. Anything that cannot be read is returned unchanged so the
    validator reports it. Non-finite floats come back as strings for the same reason.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return value

    text = _CURRENCY_NOISE.sub(" ", value).replace(",", "").strip()
    match = _AMOUNT.match(text)
    if not match:
        return value

    number, unit = match.groups()
    try:
        amount = Decimal(number)
    except InvalidOperation:
        return value

    if unit:
        multiplier = _MULTIPLIERS.get(unit.lower())
        if multiplier is None:
            return value
        amount *= multiplier

    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def normalize_department(name: Any) -> Optional[str]:
    """Map a department name onto the fixed vocabulary; unknown names pass through."""
    if not isinstance(name, str):
        return name
    cleaned = " ".join(name.split())
    if not cleaned:
        return None
    key = re.sub(r"\s+(department|dept\.?)$", "", cleaned.lower())
    key = re.sub(r"^(department|dept\.?)\s+of\s+", "", key)
    return _DEPARTMENT_ALIASES.get(key, cleaned)


def normalize_status(status: Any) -> Any:
    if status is None or (isinstance(status, str) and not status.strip()):
        return "unknown"
    if not isinstance(status, str):
        return status
    key = status.strip().lower()
    if key in STATUSES:
        return key
    return _STATUS_ALIASES.get(key, _STATUS_ALIASES.get(key.replace("-", " "), status))


def normalize_priority(priority: Any) -> Any:
    if priority is None or (isinstance(priority, str) and not priority.strip()):
        return None
    if isinstance(priority, str) and priority.strip().lower() in PRIORITIES:
        return priority.strip().lower()
    return priority


def _coerce_pages(pages: Any) -> Any:
    if pages is None:
        return None
    if isinstance(pages, (int, str)):
        pages = [pages]
    if not isinstance(pages, list):
        return pages

    coerced = []
    for page in pages:
        if isinstance(page, bool):
            coerced.append(page)
        elif isinstance(page, int):
            coerced.append(page)
        elif isinstance(page, float) and page.is_integer():
            coerced.append(int(page))
        elif isinstance(page, str) and _PAGE_REF.match(page):
            coerced.append(int(_PAGE_REF.match(page).group(1)))
        else:
            coerced.append(page)
    if all(isinstance(p, int) and not isinstance(p, bool) for p in coerced):
        return sorted(set(coerced))
    return coerced


def _fix_pages(item: dict):
    if "pages" not in item:
        return
    pages = _coerce_pages(item["pages"])
    if pages is None:
        del item["pages"]
    else:
        item["pages"] = pages


def _truncate(text: Any) -> Any:
    if isinstance(text, str) and len(text) > EVIDENCE_MAX_CHARS:
        return text[:EVIDENCE_MAX_CHARS]
    return text


def _normalize_money(money: Any) -> Any:
    if money is None:
        return None
    if not isinstance(money, dict):
        # A bare number or string where a Money object belongs
        return {"amount": parse_amount(money), "currency": CURRENCY}

    money = dict(money)
    if money.get("sourceText") is None and isinstance(money.get("amount"), str):
        money["sourceText"] = money["amount"]
    money["amount"] = parse_amount(money.get("amount"))
    money["currency"] = CURRENCY
    _fix_pages(money)
    return money


def _normalize_officer(officer: Any) -> Any:
    if not isinstance(officer, dict):
        return officer
    officer = dict(officer)
    _fix_pages(officer)
    return officer


def _fresh_id(value: Any, seen: set) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip() or value in seen:
        value = str(uuid.uuid4())
    seen.add(value)
    return value


def _amount_of(budget: Any) -> Optional[float]:
    if not isinstance(budget, dict) or not isinstance(budget.get("amount"), dict):
        return None
    amount = budget["amount"].get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return None
    return amount


def compute_totals(budgets: list) -> dict:
    """
    Recompute the overall and per-department totals from budget lines.

    Lines without a department count under ``Other``. ``byDept`` is sorted by
    department name so the result does not depend on line order.
    """
    budget_total = 0
    by_dept: dict[str, Any] = {}

    for budget in budgets:
        amount = _amount_of(budget)
        if amount is None:
            continue
        budget_total += amount
        department = budget.get("department")
        if not isinstance(department, str) or not department.strip():
            department = DEFAULT_DEPARTMENT
        by_dept[department] = by_dept.get(department, 0) + amount

    return {
        "budgetTotal": budget_total,
        "byDept": [{"department": dept, "total": by_dept[dept]} for dept in sorted(by_dept)],
    }


def empty_document(source_file_name: str, uploaded_at: str, errors: Optional[list[str]] = None) -> dict:
    """A document with no extracted content, used for degraded and failed runs."""
    document = {
        "meta": {"sourceFileName": source_file_name, "uploadedAt": uploaded_at},
        "budgets": [],
        "actions": [],
        "totals": {"budgetTotal": 0, "byDept": []},
        "version": 1,
    }
    if errors:
        document["errors"] = list(errors)
    return document


def reconcile(candidate: dict, source_file_name: str, uploaded_at: str) -> dict:
    """
    Repair a parsed model response into a document candidate.

    Args:
        candidate: JSON object returned by the structuring service
        source_file_name: Name of the uploaded file (overrides the model's)
        uploaded_at: ISO timestamp of the upload (overrides the model's)

    Returns:
        A new dict; the input is not modified
    """
    document = copy.deepcopy(candidate)

    # Pipeline-owned fields never come from the model
    document.pop("shortId", None)
    document.pop("errors", None)
    document["version"] = 1

    meta = document.get("meta")
    meta = dict(meta) if isinstance(meta, dict) else {}
    meta["sourceFileName"] = source_file_name
    meta["uploadedAt"] = uploaded_at
    if isinstance(meta.get("language"), str):
        meta["language"] = [tag.strip() for tag in re.split(r"[,+/]", meta["language"]) if tag.strip()]
    document["meta"] = meta

    seen_ids: set = set()

    budgets = document.get("budgets")
    if budgets is None:
        budgets = []
    if isinstance(budgets, list):
        repaired = []
        for budget in budgets:
            if isinstance(budget, dict):
                budget = dict(budget)
                budget["id"] = _fresh_id(budget.get("id"), seen_ids)
                budget["department"] = normalize_department(budget.get("department"))
                if budget["department"] is None:
                    del budget["department"]
                budget["amount"] = _normalize_money(budget.get("amount"))
                _fix_pages(budget)
                budget["evidence"] = _truncate(budget.get("evidence"))
            repaired.append(budget)
        budgets = repaired
    document["budgets"] = budgets

    actions = document.get("actions")
    if actions is None:
        actions = []
    if isinstance(actions, list):
        repaired = []
        for action in actions:
            if isinstance(action, dict):
                action = dict(action)
                action["id"] = _fresh_id(action.get("id"), seen_ids)
                action["status"] = normalize_status(action.get("status"))
                action["priority"] = normalize_priority(action.get("priority"))
                action["department"] = normalize_department(action.get("department"))
                if action["department"] is None:
                    del action["department"]
                budget = _normalize_money(action.get("budget"))
                if isinstance(budget, dict) and budget.get("amount") is None:
                    budget = None  # uncertain amount
                action["budget"] = budget
                action["officer"] = _normalize_officer(action.get("officer"))
                _fix_pages(action)
                action["evidence"] = _truncate(action.get("evidence"))
            repaired.append(action)
        actions = repaired
    document["actions"] = actions

    contacts = document.get("contacts")
    if isinstance(contacts, list):
        document["contacts"] = [_normalize_officer(c) for c in contacts]

    document["totals"] = compute_totals(budgets if isinstance(budgets, list) else [])
    return document
