"""
PDF rasterization via PyMuPDF.

Each page is rendered into its own :class:`~snapstag.context.BitmapContext`
with anti-aliasing disabled so renderings can be compared pixel by pixel.
Page rendering is best-effort: a page which fails to render produces a
:class:`RenderResult` without image instead of aborting the whole document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import filetype
import fitz  # PyMuPDF

from .config import settings
from .context import BitmapContext
from .exceptions import ImageFinalizeError, PageRenderError
from .geometry import IntSize, Rect
from .image import PDF_MIME_TYPE, Image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderResult:
    """Outcome of rendering a single PDF page."""

    page_number: int
    "The 1-based page number"
    image: Image | None = None
    "The rendered page, None if rendering failed"
    error: str | None = None
    "Why rendering failed"

    @property
    def ok(self) -> bool:
        return self.image is not None

    def unwrap(self) -> Image:
        """
        Returns the rendered image.

        :raises PageRenderError: If the page could not be rendered
        """
        if self.image is None:
            raise PageRenderError(
                f"Page {self.page_number} was not rendered: {self.error}"
            )
        return self.image


class PdfPage:
    """A single page of a :class:`PdfDocument`."""

    def __init__(self, handle: fitz.Page, number: int):
        """
        :param handle: The PyMuPDF page
        :param number: The 1-based page number
        """
        self.handle = handle
        "The PyMuPDF page handle"
        self.number = number
        "The 1-based page number"

    def __repr__(self) -> str:
        return f"PdfPage(number={self.number})"

    @property
    def media_box(self) -> Rect:
        """The page's media box in PDF points (1/72 inch)."""
        box = self.handle.mediabox
        return Rect(box.x0, box.y0, box.width, box.height)

    def render(self, scale: float | None = None) -> RenderResult:
        """
        Rasterizes the page.

        :param scale: Pixels per PDF point. settings.PDF_SCALE by default.
        :return: The result, holding the image if rendering succeeded
        :raises ContextAllocationError: If the bitmap could not be allocated,
            e.g. because the scaled page is empty
        """
        scale = settings.PDF_SCALE if scale is None else scale
        if scale <= 0:
            raise ValueError(f"Scale has to be positive, got {scale}")
        media_box = self.media_box
        size = IntSize.from_size(media_box.width * scale, media_box.height * scale)
        with BitmapContext(size) as ctx:
            ctx.set_allows_antialiasing(False)
            ctx.scale_by(scale)
            try:
                ctx.draw_pdf_page(self)
                image = ctx.make_image()
            except (PageRenderError, ImageFinalizeError) as e:
                logger.warning(f"Rendering page {self.number} failed: {e}")
                return RenderResult(page_number=self.number, error=str(e))
        logger.debug(f"Rendered page {self.number} at {size.width}x{size.height}")
        return RenderResult(page_number=self.number, image=image)


class PdfDocument:
    """
    A paginated PDF document.

    Usage::

        with PdfDocument.open("report.pdf") as document:
            for result in document.render_pages(scale=2.0):
                if result.ok:
                    result.image.write(f"page_{result.page_number}.png")
    """

    def __init__(self, handle: fitz.Document):
        """
        :param handle: The PyMuPDF document. Use :meth:`open` to load one.
        """
        self.handle = handle
        "The PyMuPDF document handle"

    @classmethod
    def open(cls, source: str | Path | bytes) -> PdfDocument:
        """
        Opens a PDF document.

        :param source: A file path or the document's bytes
        :return: The document
        """
        if isinstance(source, bytes):
            kind = filetype.guess(source)
            if kind is None or kind.mime != PDF_MIME_TYPE:
                raise ValueError("The provided data is not a PDF document")
            return cls(fitz.open(stream=source, filetype="pdf"))
        if not Path(source).exists():
            raise ValueError(f"PDF file not found: {source}")
        return cls(fitz.open(str(source)))

    def __enter__(self) -> PdfDocument:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.handle.close()

    @property
    def page_count(self) -> int:
        return self.handle.page_count

    def page(self, number: int) -> PdfPage:
        """
        Returns a page.

        :param number: The 1-based page number
        """
        if not 1 <= number <= self.page_count:
            raise IndexError(
                f"Page {number} out of range, document has {self.page_count} pages"
            )
        return PdfPage(self.handle.load_page(number - 1), number)

    @property
    def pages(self) -> list[PdfPage]:
        return [self.page(number) for number in range(1, self.page_count + 1)]

    def render_pages(self, scale: float | None = None) -> list[RenderResult]:
        """
        Renders all pages. Pages which fail to render yield results without
        image, they do not abort the batch.

        :param scale: Pixels per PDF point. settings.PDF_SCALE by default.
        :return: One result per page
        """
        return [page.render(scale) for page in self.pages]
