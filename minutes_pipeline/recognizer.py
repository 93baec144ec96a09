"""
Text Recognition Module
Runs Tesseract OCR over rasterized pages and detects table-like blocks.

Each page is recognized in its own task with its own worker, so pages can run in
parallel and a failure on one page never aborts the others.
"""

import io
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Optional

import pytesseract
from PIL import Image
from rich.console import Console

from config import OCR_LANGS, OCR_MAX_WORKERS, OCR_TIMEOUT
from .errors import RecognizeFailure
from .models import OcrOutput, PageImage, PageText


console = Console()

PAGE_MARKER = "###PAGE {page}###"

# Cells are separated by two or more whitespace characters or a tab
_CELL_SPLIT = re.compile(r"\s{2,}|\t")
_TOKEN = re.compile(r"\S+")


class TesseractWorker:
    """
    A single-page OCR worker.

    Holds the decoded page image for the duration of one ``with`` block and
    releases it on exit.
    """

    def __init__(self, languages: str = OCR_LANGS, timeout: int = OCR_TIMEOUT):
        self.languages = languages
        self.timeout = timeout
        self._image: Optional[Image.Image] = None

    def recognize(self, buffer: bytes) -> OcrOutput:
        self._image = Image.open(io.BytesIO(buffer))
        self._image.load()

        config = "--oem 1 --psm 3"  # LSTM engine, automatic page segmentation
        text = pytesseract.image_to_string(
            self._image, lang=self.languages, config=config, timeout=self.timeout
        )
        data = pytesseract.image_to_data(
            self._image,
            lang=self.languages,
            config=config,
            output_type=pytesseract.Output.DICT,
            timeout=self.timeout,
        )

        words = self._parse_words(data)
        if words:
            confidence = sum(w["confidence"] for w in words) / len(words)
        else:
            confidence = 0.0

        return OcrOutput(text=text, confidence=round(confidence, 2), words=words)

    def _parse_words(self, data: dict) -> list[dict]:
        """Turn pytesseract's column-oriented dict into word records."""
        words = []
        for i, raw_text in enumerate(data.get("text", [])):
            text = (raw_text or "").strip()
            conf = float(data["conf"][i])
            if not text or conf < 0:
                continue
            left, top = int(data["left"][i]), int(data["top"][i])
            words.append({
                "text": text,
                "confidence": conf,
                "bbox": {
                    "x0": left,
                    "y0": top,
                    "x1": left + int(data["width"][i]),
                    "y1": top + int(data["height"][i]),
                },
            })
        return words

    def close(self):
        if self._image is not None:
            self._image.close()
            self._image = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def detect_tables(text: str) -> list[list[list[str]]]:
    """
    Find table-like blocks in recognized text.

    A line with two or more cells is a candidate row; runs of at least two
    consecutive candidate rows form a table, isolated rows are dropped.
    """
    tables = []
    current: list[list[str]] = []

    for line in text.split("\n"):
        cells = [cell.strip() for cell in _CELL_SPLIT.split(line.strip()) if cell.strip()]
        if len(cells) >= 2:
            current.append(cells)
            continue
        if len(current) >= 2:
            tables.append(current)
        current = []

    if len(current) >= 2:
        tables.append(current)

    return tables


def _fix_confusions(token: str) -> str:
    # Only touch word-like tokens; anything carrying other digits is numeric
    has_letters = any(c.isalpha() for c in token)
    has_digits = any(c.isdigit() and c != "0" for c in token)
    if not has_letters or has_digits:
        return token
    return token.replace("0", "O").replace("|", "I")


def clean_ocr_text(text: str) -> str:
    """Normalize line endings and blank runs, fix 0/O and |/I inside words."""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    lines = [_TOKEN.sub(lambda m: _fix_confusions(m.group()), line.rstrip()) for line in lines]
    cleaned = "\n".join(lines)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def build_paged_text(pages: list[PageText]) -> str:
    """Join page texts into one blob, each page introduced by its marker."""
    ordered = sorted(pages, key=lambda p: p.page)
    return "\n\n".join(f"{PAGE_MARKER.format(page=p.page)}\n{p.text}" for p in ordered)


class Recognizer:
    """Recognizes text for a list of pages, concurrently."""

    def __init__(
        self,
        languages: str = OCR_LANGS,
        max_workers: int = OCR_MAX_WORKERS,
        worker_factory: Callable[[str], TesseractWorker] = TesseractWorker,
    ):
        self.languages = languages
        self.max_workers = max(1, max_workers)
        self.worker_factory = worker_factory

    def recognize_page(self, page: PageImage) -> PageText:
        """Recognize one page. Failures become a placeholder with confidence 0."""
        try:
            with self.worker_factory(self.languages) as worker:
                output = worker.recognize(page.buffer)
        except Exception as e:
            console.print(f"  [yellow]⚠ OCR failed on page {page.page_number}: {e}[/]")
            return PageText(
                page=page.page_number,
                text=f"[OCR Error on page {page.page_number}: {e}]",
                confidence=0.0,
                error=str(e),
            )

        # Tables are detected before cleanup, which may alter spacing
        tables = detect_tables(output.text)

        return PageText(
            page=page.page_number,
            text=clean_ocr_text(output.text),
            confidence=max(0.0, min(100.0, output.confidence)),
            words=output.words,
            tables=tables,
        )

    def recognize(self, pages: list[PageImage]) -> list[PageText]:
        """
        Recognize all pages.

        Returns:
            One PageText per input page, sorted by page number

        Raises:
            RecognizeFailure: no page produced usable text
        """
        results: dict[int, PageText] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.recognize_page, page) for page in pages]
            for future in as_completed(futures):
                page_text = future.result()
                results[page_text.page] = page_text
                console.print(
                    f"  [dim]Page {page_text.page}: confidence {page_text.confidence:.0f}%, "
                    f"{len(page_text.tables)} table(s)[/]"
                )

        ordered = [results[page] for page in sorted(results)]

        if not any(p.usable for p in ordered):
            raise RecognizeFailure("No text could be extracted from PDF")

        return ordered
