"""
Implements :class:`BitmapContext`, an in-memory drawing surface with a fixed
pixel layout: device RGB, 8 bits per channel, premultiplied alpha stored last
(R, G, B, A byte order). Rows may be padded, so :attr:`BitmapContext.bytes_per_row`
can be larger than ``width * 4``.

Pixel arithmetic happens in normalized float space on numpy views of the
backing allocation; the allocation itself is never copied until
:meth:`BitmapContext.make_image` is called.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Iterator

import numpy as np
import PIL.Image

from .config import settings
from .exceptions import (
    ContextAllocationError,
    ImageFinalizeError,
    PageRenderError,
)
from .geometry import AffineTransform, IntSize, Rect
from .image import Image
from .pixel import BLACK, CHANNEL_COUNT, RGBAPixel

if TYPE_CHECKING:
    from .pdf import PdfPage

logger = logging.getLogger(__name__)


class BlendMode(str, Enum):
    """Compositing operators supported when drawing into a context."""

    NORMAL = "normal"
    "Source over destination"
    DIFFERENCE = "difference"
    "Per channel absolute difference between source and destination"


def _aligned(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


def _to_float(pixels: np.ndarray) -> np.ndarray:
    return pixels.astype(np.float32) / 255.0


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values * 255.0), 0, 255).astype(np.uint8)


def _premultiplied(color: RGBAPixel) -> np.ndarray:
    values = np.array(color.to_float(), dtype=np.float32)
    values[:3] *= values[3]
    return values


def _unpremultiply(colors: np.ndarray) -> np.ndarray:
    rgb, alpha = colors[..., :3], colors[..., 3:4]
    return np.divide(rgb, alpha, out=np.zeros_like(rgb), where=alpha > 0)


def _source_over(dst: np.ndarray, src: np.ndarray, alpha: float) -> np.ndarray:
    src = src * alpha
    return src + dst * (1.0 - src[..., 3:4])


def _difference(dst: np.ndarray, src: np.ndarray, alpha: float) -> np.ndarray:
    src = src * alpha
    sa, da = src[..., 3:4], dst[..., 3:4]
    blended = np.abs(_unpremultiply(dst) - _unpremultiply(src))
    result = np.empty_like(dst)
    result[..., :3] = (
        src[..., :3] * (1.0 - da) + dst[..., :3] * (1.0 - sa) + sa * da * blended
    )
    result[..., 3:4] = sa + da - sa * da
    return result


_BLEND_FUNCTIONS = {
    BlendMode.NORMAL: _source_over,
    BlendMode.DIFFERENCE: _difference,
}


def _flatten(colors: np.ndarray, backdrop: np.ndarray) -> np.ndarray:
    return colors + backdrop * (1.0 - colors[..., 3:4])


def _merge_onto_backdrop(
    dst: np.ndarray,
    layer: np.ndarray,
    alpha: float,
    blend_mode: BlendMode,
    backdrop: np.ndarray,
) -> np.ndarray:
    """
    Merges a layer into its parent after flattening the parent onto an
    opaque backdrop.

    For :attr:`BlendMode.DIFFERENCE` the absolute difference between the
    flattened parent and the flattened layer is subtracted from the backdrop
    (scaled by alpha) wherever the layer has content, so identical content
    vanishes into the backdrop. Where the layer is empty the flattened parent
    is kept.
    """
    base = _flatten(dst, backdrop)
    if blend_mode == BlendMode.NORMAL:
        return _source_over(base, layer, alpha)
    top = _flatten(layer, backdrop)
    covered = layer[..., 3] > 0
    difference = np.abs(base[..., :3] - top[..., :3])
    result = base.copy()
    result[..., :3] = np.where(
        covered[..., None],
        np.clip(backdrop[:3] - alpha * difference, 0.0, 1.0),
        base[..., :3],
    )
    result[..., 3] = np.where(covered, backdrop[3], base[..., 3])
    return result


@dataclass
class _GraphicsState:
    alpha: float = 1.0
    blend_mode: BlendMode = BlendMode.NORMAL
    fill_color: RGBAPixel = BLACK
    ctm: AffineTransform = field(default_factory=AffineTransform)
    antialias: bool = True


@dataclass
class _Layer:
    pixels: np.ndarray
    state: _GraphicsState
    backdrop: RGBAPixel | None = None


class BitmapContext:
    """
    An RGBA bitmap that can be drawn into and finalized into an :class:`Image`.

    The context starts out fully transparent black. It owns its backing
    allocation until :meth:`close` is called, either directly or by leaving a
    ``with`` block.

    Usage::

        with BitmapContext(IntSize(64, 32)) as ctx:
            ctx.draw_image(image)
            result = ctx.make_image()
    """

    bits_per_component = 8
    "Bits per color channel"
    bytes_per_pixel = CHANNEL_COUNT
    "Bytes per pixel"

    def __init__(
        self,
        size: IntSize | tuple[int, int],
        row_alignment: int | None = None,
    ):
        """
        :param size: The size in pixels. Both dimensions have to be positive.
        :param row_alignment: Row alignment in bytes. settings.ROW_ALIGNMENT
            by default.
        :raises ContextAllocationError: If the size is empty or the memory
            could not be allocated
        """
        if not isinstance(size, IntSize):
            size = IntSize(*size)
        if size.width <= 0 or size.height <= 0:
            raise ContextAllocationError(
                f"Can not allocate a bitmap context of size "
                f"{size.width}x{size.height}"
            )
        alignment = row_alignment if row_alignment is not None else settings.ROW_ALIGNMENT
        self.size = size
        "The size in pixels"
        self.bytes_per_row = _aligned(size.width * self.bytes_per_pixel, alignment)
        "Distance in bytes between the starts of two consecutive rows"
        try:
            self._data: bytearray | None = bytearray(self.bytes_per_row * size.height)
        except MemoryError as e:
            raise ContextAllocationError(
                f"Out of memory allocating {size.width}x{size.height} bitmap"
            ) from e
        self._state = _GraphicsState()
        self._saved_states: list[_GraphicsState] = []
        self._layers: list[_Layer] = []
        logger.debug(
            f"Allocated {size.width}x{size.height} bitmap context "
            f"({self.bytes_per_row} bytes per row)"
        )

    def __enter__(self) -> BitmapContext:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def width(self) -> int:
        return self.size.width

    @property
    def height(self) -> int:
        return self.size.height

    @property
    def closed(self) -> bool:
        return self._data is None

    @property
    def data(self) -> memoryview:
        """
        The raw backing allocation of ``height * bytes_per_row`` bytes.
        """
        return memoryview(self._checked_data())

    def close(self):
        """
        Releases the backing allocation. Further calls have no effect.
        """
        if self._data is None:
            return
        self._data = None
        self._layers.clear()
        logger.debug(f"Released {self.width}x{self.height} bitmap context")

    def _checked_data(self) -> bytearray:
        if self._data is None:
            raise ValueError("Operation on a closed bitmap context")
        return self._data

    def _pixels(self) -> np.ndarray:
        """A writable (height, width, 4) view excluding the row padding."""
        return np.ndarray(
            shape=(self.height, self.width, self.bytes_per_pixel),
            dtype=np.uint8,
            buffer=self._checked_data(),
            strides=(self.bytes_per_row, self.bytes_per_pixel, 1),
        )

    def _target(self) -> np.ndarray:
        if self._layers:
            return self._layers[-1].pixels
        return self._pixels()

    # ------- graphics state -------

    @property
    def alpha(self) -> float:
        return self._state.alpha

    @property
    def blend_mode(self) -> BlendMode:
        return self._state.blend_mode

    @property
    def fill_color(self) -> RGBAPixel:
        return self._state.fill_color

    @property
    def ctm(self) -> AffineTransform:
        """The current transformation matrix"""
        return self._state.ctm

    @property
    def allows_antialiasing(self) -> bool:
        return self._state.antialias

    def set_alpha(self, alpha: float):
        if not 0.0 <= alpha <= 1.0:
            raise ValueError(f"Alpha has to be within 0.0 and 1.0, got {alpha}")
        self._state.alpha = float(alpha)

    def set_blend_mode(self, blend_mode: BlendMode | str):
        self._state.blend_mode = BlendMode(blend_mode)

    def set_fill_color(self, color: RGBAPixel | tuple[int, int, int, int]):
        self._state.fill_color = RGBAPixel.from_bytes(color)

    def set_allows_antialiasing(self, allows: bool):
        self._state.antialias = bool(allows)

    def concat_ctm(self, transform: AffineTransform):
        """Prepends transform to the current transformation matrix."""
        self._state.ctm = transform.concatenating(self._state.ctm)

    def scale_by(self, sx: float, sy: float | None = None):
        self.concat_ctm(AffineTransform.scale(sx, sy))

    def translate_by(self, tx: float, ty: float):
        self.concat_ctm(AffineTransform.translation(tx, ty))

    @contextmanager
    def saved_state(self) -> Iterator[BitmapContext]:
        """
        Restores the graphics state (alpha, blend mode, fill color, transform,
        anti-aliasing) when the block is left.
        """
        self._saved_states.append(replace(self._state))
        try:
            yield self
        finally:
            self._state = self._saved_states.pop()

    # ------- drawing -------

    def _composite(self, source: np.ndarray, x: int, y: int):
        """
        Blends premultiplied float pixels into the current target with the
        current alpha and blend mode, clipping to the context bounds.
        """
        target = self._target()
        height, width = source.shape[:2]
        x0, y0 = max(x, 0), max(y, 0)
        x1, y1 = min(x + width, self.width), min(y + height, self.height)
        if x0 >= x1 or y0 >= y1:
            return
        source = source[y0 - y : y1 - y, x0 - x : x1 - x]
        region = target[y0:y1, x0:x1]
        blend = _BLEND_FUNCTIONS[self._state.blend_mode]
        region[...] = _to_uint8(blend(_to_float(region), source, self._state.alpha))

    def _device_rect(self, rect: Rect) -> tuple[int, int, int, int]:
        ctm = self._state.ctm
        if not ctm.is_axis_aligned:
            raise NotImplementedError("Only axis-aligned transforms are supported")
        return ctm.apply_to_rect(rect).to_int_tuple()

    def draw_image(self, image: Image, rect: Rect | None = None):
        """
        Draws an image into the given rectangle.

        :param image: The image to draw
        :param rect: The target rectangle in user space. The image's own
            rectangle at the origin by default.
        """
        self._checked_data()
        x, y, width, height = self._device_rect(image.rect if rect is None else rect)
        if width <= 0 or height <= 0:
            return
        handle = image.to_pil().convert("RGBa")
        if self._state.ctm.a < 0:
            handle = handle.transpose(PIL.Image.Transpose.FLIP_LEFT_RIGHT)
        if self._state.ctm.d < 0:
            handle = handle.transpose(PIL.Image.Transpose.FLIP_TOP_BOTTOM)
        if handle.size != (width, height):
            resample = (
                PIL.Image.Resampling.BILINEAR
                if self._state.antialias
                else PIL.Image.Resampling.NEAREST
            )
            handle = handle.resize((width, height), resample=resample)
        self._composite(_to_float(np.asarray(handle)), x, y)

    def fill_rect(self, rect: Rect, color: RGBAPixel | None = None):
        """
        Fills a rectangle with a solid color.

        :param rect: The rectangle in user space
        :param color: The color. The current fill color by default.
        """
        self._checked_data()
        x, y, width, height = self._device_rect(rect)
        if width <= 0 or height <= 0:
            return
        color = self._state.fill_color if color is None else RGBAPixel.from_bytes(color)
        source = np.broadcast_to(_premultiplied(color), (height, width, 4))
        self._composite(source, x, y)

    def draw_pdf_page(self, page: PdfPage):
        """
        Rasterizes a PDF page through the current transformation matrix.

        :param page: The page to draw
        :raises PageRenderError: If the page content could not be rasterized
        """
        import fitz  # PyMuPDF

        self._checked_data()
        ctm = self._state.ctm
        if not ctm.is_axis_aligned:
            raise NotImplementedError("Only axis-aligned transforms are supported")
        matrix = fitz.Matrix(ctm.a, ctm.b, ctm.c, ctm.d, ctm.tx, ctm.ty)
        previous_level = fitz.TOOLS.show_aa_level()["graphics"]
        if not self._state.antialias:
            fitz.TOOLS.set_aa_level(0)
        try:
            # Undo /Rotate so the page fills its media box
            pixmap = page.handle.get_pixmap(
                matrix=page.handle.derotation_matrix * matrix, alpha=True
            )
        except Exception as e:
            raise PageRenderError(f"Failed to rasterize page {page.number}") from e
        finally:
            fitz.TOOLS.set_aa_level(previous_level)
        handle = PIL.Image.frombytes(
            "RGBa",
            (pixmap.width, pixmap.height),
            pixmap.samples,
            "raw",
            "RGBa",
            pixmap.stride,
        )
        self._composite(_to_float(np.asarray(handle)), pixmap.x, pixmap.y)

    # ------- transparency layers -------

    def begin_transparency_layer(self):
        """
        Starts an isolated layer. Drawing goes into a fresh transparent buffer
        with alpha 1 and normal blending until :meth:`end_transparency_layer`
        merges it using the alpha and blend mode active now.
        """
        self._checked_data()
        pixels = np.zeros((self.height, self.width, self.bytes_per_pixel), np.uint8)
        self._layers.append(_Layer(pixels=pixels, state=self._state))
        self._state = replace(self._state, alpha=1.0, blend_mode=BlendMode.NORMAL)

    def set_layer_backdrop(self, color: RGBAPixel | tuple[int, int, int, int]):
        """
        Gives the innermost open layer an opaque backdrop it is merged against.

        :param color: The opaque backdrop color
        """
        if not self._layers:
            raise RuntimeError("No transparency layer is open")
        color = RGBAPixel.from_bytes(color)
        if not color.is_opaque:
            raise ValueError("The layer backdrop has to be opaque")
        self._layers[-1].backdrop = color

    def end_transparency_layer(self):
        """
        Merges the innermost layer into its parent and restores the graphics
        state which was active when the layer began.
        """
        self._checked_data()
        if not self._layers:
            raise RuntimeError("No transparency layer is open")
        layer = self._layers.pop()
        state = layer.state
        parent = self._target()
        if layer.backdrop is None:
            blend = _BLEND_FUNCTIONS[state.blend_mode]
            merged = blend(_to_float(parent), _to_float(layer.pixels), state.alpha)
        else:
            merged = _merge_onto_backdrop(
                _to_float(parent),
                _to_float(layer.pixels),
                state.alpha,
                state.blend_mode,
                _premultiplied(layer.backdrop),
            )
        parent[...] = _to_uint8(merged)
        self._state = state

    def _discard_transparency_layer(self):
        if self._layers:
            self._state = self._layers.pop().state

    @contextmanager
    def transparency_layer(self) -> Iterator[BitmapContext]:
        """
        Wraps :meth:`begin_transparency_layer` and
        :meth:`end_transparency_layer`. If the block raises, the layer is
        dropped without being merged and the previous graphics state is
        restored.
        """
        self.begin_transparency_layer()
        try:
            yield self
        except BaseException:
            self._discard_transparency_layer()
            raise
        self.end_transparency_layer()

    # ------- finalization -------

    def make_image(self) -> Image:
        """
        Creates an image from the current content.

        :return: The image, an independent copy of the pixel data
        :raises ImageFinalizeError: If the context was closed or a
            transparency layer is still open
        """
        if self._data is None:
            raise ImageFinalizeError("Can not create an image from a closed context")
        if self._layers:
            raise ImageFinalizeError(
                f"{len(self._layers)} transparency layer(s) still open"
            )
        handle = PIL.Image.frombytes(
            "RGBa",
            self.size.to_tuple(),
            bytes(self._data),
            "raw",
            "RGBa",
            self.bytes_per_row,
            1,
        )
        return Image(handle.convert("RGBA"))
