import json
import os
import tempfile
import time

# Keep config's output directory and the Gemini client away from real settings
os.environ.setdefault("OUTPUT_DIR", tempfile.mkdtemp(prefix="minutes_test_output_"))
os.environ.setdefault("GOOGLE_API_KEY", "test-key")

import fitz
import pytest

from minutes_pipeline.models import OcrOutput, PageImage


class FakeWorker:
    """OCR worker whose 'image' is the page text itself.

    Buffers starting with ``!`` raise; ``sleep=<seconds>;`` delays the call.
    """

    closed = []

    def __init__(self, languages, timeout=0):
        self.languages = languages

    def recognize(self, buffer: bytes) -> OcrOutput:
        text = buffer.decode("utf-8")
        if text.startswith("sleep="):
            delay, text = text[len("sleep="):].split(";", 1)
            time.sleep(float(delay))
        if text.startswith("!"):
            raise RuntimeError(text[1:] or "engine crashed")
        return OcrOutput(text=text, confidence=91.5)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        FakeWorker.closed.append(self)
        return False


class FakeClient:
    """Structuring client that replays queued answers and records prompts."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


def make_pages(*texts):
    return [
        PageImage(page_number=i, buffer=text.encode("utf-8"), width=100, height=100)
        for i, text in enumerate(texts, start=1)
    ]


def make_pdf(page_count: int, password: str = None) -> bytes:
    doc = fitz.open()
    for i in range(page_count):
        page = doc.new_page(width=200, height=200)
        page.insert_text((20, 40), f"Page {i + 1}")
    if password:
        data = doc.tobytes(encryption=fitz.PDF_ENCRYPT_AES_256, owner_pw="owner-" + password, user_pw=password)
    else:
        data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def candidate():
    """A well-formed model answer for a two-page minutes document."""
    return {
        "meta": {
            "municipality": "Tirunelveli Corporation",
            "meetingDate": "2024-03-12",
            "meetingType": "Council",
            "language": ["ta", "en"],
        },
        "budgets": [
            {
                "id": "b-1",
                "purpose": "Drinking water pipeline, Ward 12",
                "department": "Water Supply",
                "amount": {"amount": 1200000, "currency": "INR", "sourceText": "₹12,00,000"},
                "pages": [1],
                "evidence": "Sanctioned ₹12,00,000 for the Ward 12 pipeline",
            },
            {
                "id": "b-2",
                "purpose": "Street light repairs",
                "department": "Electricity",
                "amount": {"amount": 300000, "currency": "INR"},
                "pages": [2],
            },
        ],
        "actions": [
            {
                "id": "a-1",
                "title": "Lay pipeline in Ward 12",
                "department": "Water Supply",
                "officer": {"name": "R. Kumar", "title": "Assistant Engineer"},
                "deadline": "2024-06-30",
                "status": "approved",
                "priority": "high",
                "pages": [1],
            },
        ],
        "totals": {"budgetTotal": 999, "byDept": []},
    }


@pytest.fixture
def fake_worker():
    FakeWorker.closed = []
    return FakeWorker
