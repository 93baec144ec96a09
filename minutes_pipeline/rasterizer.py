"""
PDF Rasterizer Module
Renders the pages of an uploaded document to PNG images.
"""

import tempfile
from pathlib import Path
from typing import Optional

import fitz  # pymupdf
from rich.console import Console

from config import DPI, PAGE_LIMIT
from .errors import RasterizeFailure
from .models import PageImage


console = Console()


class PDFRasterizer:
    """
    Renders PDF bytes to page images.

    Intermediate files (the source PDF and one PNG per page) live in a temporary
    working directory owned by this object; ``close()`` removes it, so use the
    rasterizer as a context manager.
    """

    def __init__(self, pdf_bytes: bytes, dpi: int = DPI):
        self.dpi = dpi
        self._tmp = tempfile.TemporaryDirectory(prefix="minutes_raster_")
        self.work_dir = Path(self._tmp.name)

        try:
            if not pdf_bytes:
                raise ValueError("document is empty")
            source_path = self.work_dir / "source.pdf"
            source_path.write_bytes(pdf_bytes)
            self.doc = fitz.open(str(source_path), filetype="pdf")
        except Exception as e:
            self._tmp.cleanup()
            raise RasterizeFailure(f"Failed to parse PDF: {e}") from e

        if self.doc.needs_pass:
            self.close()
            raise RasterizeFailure("PDF is password-protected")

    @property
    def page_count(self) -> int:
        """Return total number of pages in the PDF."""
        return len(self.doc)

    def render_page(self, index: int) -> PageImage:
        """
        Render a single page.

        Args:
            index: Zero-indexed page number

        Returns:
            PageImage with a 1-based page number
        """
        if index < 0 or index >= self.page_count:
            raise ValueError(f"Page {index} out of range (0-{self.page_count - 1})")

        page = self.doc[index]

        zoom = self.dpi / 72  # PDF default is 72 DPI
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))

        page_path = self.work_dir / f"page_{index + 1:03d}.png"
        pix.save(str(page_path))

        return PageImage(
            page_number=index + 1,
            buffer=page_path.read_bytes(),
            width=pix.width,
            height=pix.height,
        )

    def render_pages(self, page_limit: Optional[int] = PAGE_LIMIT) -> list[PageImage]:
        """Render pages in order, stopping at ``page_limit``."""
        count = self.page_count
        if page_limit is not None:
            if count > page_limit:
                console.print(f"[dim]Document has {count} pages, rendering first {page_limit}[/]")
            count = min(count, max(page_limit, 0))

        try:
            return [self.render_page(i) for i in range(count)]
        except (RuntimeError, ValueError) as e:
            raise RasterizeFailure(f"Failed to render PDF page: {e}") from e

    def close(self):
        """Close the PDF document and remove intermediate files."""
        try:
            self.doc.close()
        finally:
            self._tmp.cleanup()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def rasterize(pdf_bytes: bytes, page_limit: int = PAGE_LIMIT, dpi: int = DPI) -> list[PageImage]:
    """
    Convert PDF bytes to page images.

    Raises:
        RasterizeFailure: the document cannot be parsed or has no pages
    """
    with PDFRasterizer(pdf_bytes, dpi=dpi) as rasterizer:
        pages = rasterizer.render_pages(page_limit)

    if not pages:
        raise RasterizeFailure("No pages could be extracted from PDF")

    console.print(f"[dim]Rasterized {len(pages)} page(s) at {dpi} DPI[/]")
    return pages
