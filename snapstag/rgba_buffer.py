# snapstag - RGBABuffer
"""
A zero-copy view of a raw RGBA bitmap as rows of pixels.

The view wraps a flat byte buffer of ``height * bytes_per_row`` bytes. Nothing
is decoded up front: :attr:`RGBABuffer.rows` computes each row's byte range
from ``(row_index, bytes_per_row)`` and each pixel's range from
``pixel_index * 4`` only when it is accessed. Row padding beyond
``width * 4`` bytes is never exposed.

The backing memory has to stay valid while the view is in use. A view
created from a :class:`~snapstag.context.BitmapContext` keeps the context
alive and closes it exactly once when the view is closed or collected.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Sequence
from typing import Callable, Iterator, overload

import numpy as np

from .context import BitmapContext
from .exceptions import BufferGeometryError
from .geometry import IntSize
from .image import Image
from .pixel import CHANNEL_COUNT, RGBAPixel

logger = logging.getLogger(__name__)


def _release_backing(release: Callable[[], None] | None):
    if release is not None:
        release()


class PixelRow(Sequence):
    """The ``width`` pixels of a single bitmap row, decoded on access."""

    def __init__(self, buffer: RGBABuffer, index: int):
        self._buffer = buffer
        self.index = index
        "The row's index within the bitmap"
        self._offset = index * buffer.bytes_per_row

    def __len__(self) -> int:
        return self._buffer.size.width

    @overload
    def __getitem__(self, index: int) -> RGBAPixel: ...

    @overload
    def __getitem__(self, index: slice) -> list[RGBAPixel]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        width = len(self)
        if index < 0:
            index += width
        if not 0 <= index < width:
            raise IndexError(f"Pixel index {index} out of range for width {width}")
        start = self._offset + index * CHANNEL_COUNT
        return RGBAPixel.from_bytes(self._buffer.raw[start : start + CHANNEL_COUNT])

    def __iter__(self) -> Iterator[RGBAPixel]:
        for index in range(len(self)):
            yield self[index]

    def __repr__(self) -> str:
        return f"PixelRow(index={self.index}, width={len(self)})"


class PixelRows(Sequence):
    """The ``height`` rows of a bitmap. Can be traversed any number of times."""

    def __init__(self, buffer: RGBABuffer):
        self._buffer = buffer

    def __len__(self) -> int:
        return self._buffer.size.height

    @overload
    def __getitem__(self, index: int) -> PixelRow: ...

    @overload
    def __getitem__(self, index: slice) -> list[PixelRow]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        height = len(self)
        if index < 0:
            index += height
        if not 0 <= index < height:
            raise IndexError(f"Row index {index} out of range for height {height}")
        return PixelRow(self._buffer, index)

    def __iter__(self) -> Iterator[PixelRow]:
        for index in range(len(self)):
            yield PixelRow(self._buffer, index)


class RGBABuffer:
    """
    Exposes a raw RGBA byte buffer as a sequence of pixel rows.

    Usage::

        with image.rgba_buffer() as buffer:
            for row in buffer.rows:
                for pixel in row:
                    ...
    """

    def __init__(
        self,
        raw,
        width: int,
        height: int,
        bytes_per_row: int,
        release: Callable[[], None] | None = None,
    ):
        """
        :param raw: Any object exporting the buffer protocol, e.g. a
            bytearray or a bitmap context's data. It is referenced, not copied.
        :param width: The logical width in pixels
        :param height: The number of rows
        :param bytes_per_row: The distance in bytes between two row starts.
            At least width * 4.
        :param release: Called exactly once when the view is closed or
            garbage collected, e.g. to free the backing allocation.
        :raises BufferGeometryError: If the buffer is too small for the
            geometry or the geometry is invalid
        """
        if width < 0 or height < 0:
            raise BufferGeometryError(f"Invalid buffer size {width}x{height}")
        if bytes_per_row < width * CHANNEL_COUNT:
            raise BufferGeometryError(
                f"{bytes_per_row} bytes per row can not hold {width} RGBA pixels"
            )
        view = memoryview(raw).cast("B")
        if len(view) < height * bytes_per_row:
            raise BufferGeometryError(
                f"Buffer of {len(view)} bytes is smaller than "
                f"{height} rows of {bytes_per_row} bytes"
            )
        self.size = IntSize(width, height)
        "The logical size in pixels, excluding row padding"
        self.bytes_per_row = bytes_per_row
        "The distance in bytes between two row starts"
        self._raw: memoryview | None = view
        self._finalizer = weakref.finalize(self, _release_backing, release)

    @classmethod
    def from_context(cls, context: BitmapContext) -> RGBABuffer:
        """
        Creates a view of a bitmap context's memory. The context is closed
        when the view is released.

        :param context: The context. It must not be closed elsewhere while
            the view is in use.
        :return: The view
        """
        return cls(
            context.data,
            context.width,
            context.height,
            context.bytes_per_row,
            release=context.close,
        )

    @classmethod
    def from_image(cls, image: Image) -> RGBABuffer:
        """
        Draws an image into a new bitmap context of the same size and returns
        a view of the context's premultiplied pixels.

        :param image: The image
        :return: The view, owning the context. Images without pixels get an
            empty view without context.
        """
        size = image.int_size
        if size.area == 0:
            return cls(b"", size.width, size.height, size.width * CHANNEL_COUNT)
        context = BitmapContext(size)
        try:
            context.draw_image(image, image.rect)
            return cls.from_context(context)
        except BaseException:
            context.close()
            raise

    def __enter__(self) -> RGBABuffer:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self) -> Iterator[PixelRow]:
        return iter(self.rows)

    def __repr__(self) -> str:
        return (
            f"RGBABuffer({self.size.width}x{self.size.height}, "
            f"bytes_per_row={self.bytes_per_row}, closed={self.closed})"
        )

    @property
    def closed(self) -> bool:
        return self._raw is None

    @property
    def raw(self) -> memoryview:
        """The backing bytes, including row padding."""
        if self._raw is None:
            raise ValueError("Operation on a closed pixel buffer")
        return self._raw

    @property
    def rows(self) -> PixelRows:
        """
        The pixel rows. Rows and pixels are decoded lazily on each traversal.
        """
        if self.closed:
            raise ValueError("Operation on a closed pixel buffer")
        return PixelRows(self)

    def row(self, index: int) -> PixelRow:
        return self.rows[index]

    def pixel(self, x: int, y: int) -> RGBAPixel:
        """
        Returns the pixel at given coordinate.

        :param x: The column
        :param y: The row
        """
        return self.rows[y][x]

    def to_numpy(self) -> np.ndarray:
        """
        Returns a read-only (height, width, 4) uint8 view of the pixels
        (without row padding) sharing memory with the backing buffer.
        """
        width, height = self.size.to_tuple()
        array = np.ndarray(
            shape=(height, width, CHANNEL_COUNT),
            dtype=np.uint8,
            buffer=self.raw,
            strides=(self.bytes_per_row, CHANNEL_COUNT, 1),
        )
        array.flags.writeable = False
        return array

    def close(self):
        """
        Releases the view and its backing allocation. Calling it more than
        once has no further effect.
        """
        self._raw = None
        if self._finalizer.alive:
            logger.debug(f"Releasing pixel buffer {self.size.width}x{self.size.height}")
        self._finalizer()
