"""
snapstag - Pixel buffer access and visual diffing for screenshot tests
"""

from .config import Settings, settings
from .exceptions import (
    SnapstagError,
    BufferGeometryError,
    PixelDecodeError,
    ContextAllocationError,
    ImageFinalizeError,
    PageRenderError,
    ImageWriteError,
    DestinationCreateError,
    DestinationFinalizeError,
)
from .geometry import IntSize, Rect, AffineTransform
from .pixel import RGBAPixel, TRANSPARENT, BLACK, WHITE
from .image import Image, ImageSourceTypes
from .context import BitmapContext, BlendMode
from .rgba_buffer import RGBABuffer, PixelRows, PixelRow
from .diff import diff_images, compare_images, ComparisonResult
from .pdf import PdfDocument, PdfPage, RenderResult

__all__ = [
    # Configuration
    "Settings",
    "settings",
    # Errors
    "SnapstagError",
    "BufferGeometryError",
    "PixelDecodeError",
    "ContextAllocationError",
    "ImageFinalizeError",
    "PageRenderError",
    "ImageWriteError",
    "DestinationCreateError",
    "DestinationFinalizeError",
    # Geometry
    "IntSize",
    "Rect",
    "AffineTransform",
    # Pixels
    "RGBAPixel",
    "TRANSPARENT",
    "BLACK",
    "WHITE",
    # Images and drawing
    "Image",
    "ImageSourceTypes",
    "BitmapContext",
    "BlendMode",
    # Pixel buffer views
    "RGBABuffer",
    "PixelRows",
    "PixelRow",
    # Diffing
    "diff_images",
    "compare_images",
    "ComparisonResult",
    # PDF
    "PdfDocument",
    "PdfPage",
    "RenderResult",
]

__version__ = "0.1.0"
