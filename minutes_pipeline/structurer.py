"""
Structured Extraction Module
Uses an LLM to turn page-tagged OCR text into a budgets/actions JSON document.
"""

import json
import re
from typing import Optional

import google.generativeai as genai
from rich.console import Console

from config import (
    GOOGLE_API_KEY,
    OPENAI_API_KEY,
    STRUCTURING_PROVIDER,
    GEMINI_MODEL,
    OPENAI_MODEL,
    EXTRACT_TEMPERATURE,
    EXTRACT_MAX_TOKENS,
    EXTRACT_TIMEOUT,
    EVIDENCE_MAX_CHARS,
)
from .errors import ExtractFailure
from .reconciler import empty_document, reconcile
from .schema import DEPARTMENTS, PRIORITIES, STATUSES


# Configure Gemini API
genai.configure(api_key=GOOGLE_API_KEY)

console = Console()


SYSTEM_PROMPT = f"""You are a government meeting-minutes extraction engine. Output ONLY one valid JSON object that follows the schema below.

## Rules:
- Extract budget allocations and action items grounded in quoted evidence text and page numbers
- Pages are introduced by markers like ###PAGE 3###; use those numbers in every "pages" list
- Currency is always "INR"; "amount" is a plain number with no symbols, commas or words
  (e.g. "12,00,000 rupees" -> 1200000, "1.5 crore" -> 15000000)
- If a value is uncertain, use null and explain in "evidence"; never guess
- Dates: ISO format (YYYY-MM-DD) when explicit, otherwise keep the original string
- Department names must be one of: {", ".join(DEPARTMENTS)}
- Action "status" must be one of: {", ".join(STATUSES)}; use "proposed" unless the minutes say otherwise
- Action "priority" must be one of: {", ".join(PRIORITIES)}, or null
- Every budget and action item needs a unique "id" (UUID format)
- Keep evidence snippets under {EVIDENCE_MAX_CHARS} characters
- Extract officer names, titles, departments and phone numbers when present

## Schema:
{{
  "meta": {{"municipality": str|null, "meetingDate": str|null, "meetingType": str|null, "language": [str]}},
  "budgets": [{{"id": str, "purpose": str, "department": str|null,
               "amount": {{"amount": number, "currency": "INR", "sourceText": str|null, "pages": [int]}},
               "pages": [int], "evidence": str|null}}],
  "actions": [{{"id": str, "title": str, "description": str|null, "department": str|null,
               "officer": {{"name": str|null, "title": str|null, "dept": str|null, "contact": str|null, "pages": [int]}}|null,
               "budget": {{"amount": number, "currency": "INR", "sourceText": str|null, "pages": [int]}}|null,
               "deadline": str|null, "status": str, "priority": str|null, "pages": [int], "evidence": str|null}}],
  "contacts": [{{"name": str|null, "title": str|null, "dept": str|null, "contact": str|null, "pages": [int]}}],
  "totals": {{"budgetTotal": number, "byDept": [{{"department": str, "total": number}}]}}
}}
"""


USER_PROMPT_TEMPLATE = """CONTEXT:
Municipality meeting minutes, OCR content follows, by page.
Source file: {source_file_name}
Upload time: {uploaded_at}

TASKS:
1) Extract budget allocations and action items from the meeting minutes
2) Map officer names/titles/departments if present
3) Compute totals: overall budget + by department
4) Provide contact information if present
5) Keep evidence snippets and page references

OCR CONTENT:
{paged_text}

Return JSON only with the extracted data following the schema."""


CORRECTION_PROMPT_TEMPLATE = """The previous extraction had validation errors:
{errors}

Fix these issues and return valid JSON.

{user_prompt}"""


def _reject_constant(name: str):
    # NaN and Infinity are not JSON and cannot be amounts
    raise ValueError(f"non-finite number {name}")


class GeminiStructuringClient:
    """Structuring calls through Gemini with JSON output enforced."""

    def __init__(self, model_name: str = GEMINI_MODEL):
        self.model_name = model_name
        self.model = genai.GenerativeModel(model_name, system_instruction=SYSTEM_PROMPT)

    def complete(self, prompt: str) -> str:
        response = self.model.generate_content(
            prompt,
            generation_config={
                "temperature": EXTRACT_TEMPERATURE,
                "max_output_tokens": EXTRACT_MAX_TOKENS,
                "response_mime_type": "application/json",
            },
            request_options={"timeout": EXTRACT_TIMEOUT},
        )

        if not response.candidates or not response.candidates[0].content.parts:
            finish_reason = response.candidates[0].finish_reason if response.candidates else "UNKNOWN"
            raise ExtractFailure(f"Empty response from structuring service (finish_reason: {finish_reason})")

        return response.text


class OpenAIStructuringClient:
    """Structuring calls through OpenAI chat completions in JSON mode."""

    def __init__(self, model_name: str = OPENAI_MODEL):
        import openai
        self.client = openai.OpenAI(api_key=OPENAI_API_KEY, timeout=EXTRACT_TIMEOUT)
        self.model_name = model_name

    def complete(self, prompt: str) -> str:
        completion = self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=EXTRACT_TEMPERATURE,
            max_tokens=EXTRACT_MAX_TOKENS,
            response_format={"type": "json_object"},
        )

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ExtractFailure("No response from structuring service")
        return content


def make_client(provider: str = STRUCTURING_PROVIDER):
    """Build the structuring client for the configured provider."""
    if provider == "openai":
        return OpenAIStructuringClient()
    if provider == "gemini":
        return GeminiStructuringClient()
    raise ValueError(f"Unknown structuring provider: {provider}")


class StructuredExtractor:
    """
    Extracts budgets, actions and contacts from paged OCR text.

    ``extract`` never raises: a failed call or an unparseable answer produces a
    degraded document with the failure message in ``errors``.
    """

    def __init__(self, client=None, provider: str = STRUCTURING_PROVIDER):
        self.client = client if client is not None else make_client(provider)

    def build_prompt(
        self,
        paged_text: str,
        source_file_name: str,
        uploaded_at: str,
        prior_errors: Optional[list[str]] = None,
    ) -> str:
        """Build the user prompt; prior validation errors turn it into a correction request."""
        prompt = USER_PROMPT_TEMPLATE.format(
            source_file_name=source_file_name,
            uploaded_at=uploaded_at,
            paged_text=paged_text,
        )
        if prior_errors:
            prompt = CORRECTION_PROMPT_TEMPLATE.format(
                errors="\n".join(f"- {error}" for error in prior_errors),
                user_prompt=prompt,
            )
        return prompt

    def extract(
        self,
        paged_text: str,
        source_file_name: str,
        uploaded_at: str,
        prior_errors: Optional[list[str]] = None,
    ) -> dict:
        """
        Extract a candidate document.

        Args:
            paged_text: OCR text with ###PAGE N### markers
            source_file_name: Uploaded file name, copied into meta
            uploaded_at: ISO upload timestamp, copied into meta
            prior_errors: Validation messages from a previous attempt

        Returns:
            Reconciled candidate document (not yet validated)
        """
        prompt = self.build_prompt(paged_text, source_file_name, uploaded_at, prior_errors)

        try:
            response_text = self.client.complete(prompt)
            candidate = self._parse_response(response_text)
        except ExtractFailure as e:
            console.print(f"  [red]✗ {e.message}[/]")
            return empty_document(source_file_name, uploaded_at, [f"LLM extraction failed: {e.message}"])
        except Exception as e:
            console.print(f"  [red]✗ Structuring call failed: {e}[/]")
            return empty_document(source_file_name, uploaded_at, [f"LLM extraction failed: {e}"])

        return reconcile(candidate, source_file_name, uploaded_at)

    def _parse_response(self, response_text: Optional[str]) -> dict:
        """Parse the JSON object out of the model's answer."""
        if not response_text or not response_text.strip():
            raise ExtractFailure("No response from structuring service")

        text = response_text.strip()

        # Remove markdown code blocks if present
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

        # Drop any prose around the object
        text = re.sub(r"^[^{]*", "", text, count=1)
        end = text.rfind("}")
        if end != -1:
            text = text[:end + 1]

        try:
            data = json.loads(text, parse_constant=_reject_constant)
        except ValueError as e:
            raise ExtractFailure(f"Invalid JSON response from LLM: {e}") from e

        if not isinstance(data, dict):
            raise ExtractFailure(f"Expected a JSON object from LLM, got {type(data).__name__}")

        return data
