"""
Implements the class :class:`.Image`, the image type snapstag draws, diffs and
writes. Image data is always kept as 8 bit per channel RGBA in a PILLOW image.
"""

from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Union

import filetype
import numpy as np
import PIL.Image

from .exceptions import DestinationCreateError, DestinationFinalizeError
from .geometry import IntSize, Rect
from .pixel import TRANSPARENT, RGBAPixel

if TYPE_CHECKING:
    from .rgba_buffer import RGBABuffer

logger = logging.getLogger(__name__)

EIGHT_BIT_PIL_MODES = {"1", "L", "LA", "P", "PA", "RGB", "RGBA", "RGBa", "RGBX"}
"PILLOW modes which can be converted to RGBA without losing precision"

PDF_MIME_TYPE = "application/pdf"

Image = type

ImageSourceTypes = Union[str, Path, bytes, np.ndarray, PIL.Image.Image, Image]
"The valid source types for loading an image"


def _load_from_file(source: str | Path) -> bytes:
    """
    Loads encoded image data from disk.

    :param source: The file path
    :return: The file's content
    """
    if not os.path.exists(source):
        raise ValueError(f"Image file not found: {source}")
    with open(source, "rb") as f:
        return f.read()


class Image:
    """
    An RGBA image with 8 bits per channel.

    Images are treated as immutable: drawing happens in a
    :class:`~snapstag.context.BitmapContext` which produces new images.
    """

    def __init__(
        self,
        source: ImageSourceTypes | None = None,
        size: IntSize | tuple[int, int] | None = None,
        bg_color: RGBAPixel | tuple[int, int, int, int] | None = None,
    ):
        """
        :param source: The image source. Either a file name, encoded image
            data, a uint8 numpy array of shape (height, width, 3 or 4), a
            PILLOW image or another Image.
        :param size: The size of a new blank image - if no source is passed.
        :param bg_color: The color of a new blank image. Transparent by
            default.

        Raises a ValueError if the image could not be loaded
        """
        if source is None:
            if size is None:
                raise ValueError("Either a source or a size has to be provided")
            size = size if isinstance(size, IntSize) else IntSize(*size)
            color = RGBAPixel.from_bytes(TRANSPARENT if bg_color is None else bg_color)
            self._pil_handle = PIL.Image.new("RGBA", size.to_tuple(), tuple(color))
        else:
            if size is not None:
                raise ValueError("Source and size may not be specified at the same time")
            self._pil_handle = self._handle_from_source(source)
        self.width: int = self._pil_handle.width
        "The image's width in pixels"
        self.height: int = self._pil_handle.height
        "The image's height in pixels"

    @classmethod
    def _handle_from_source(cls, source: ImageSourceTypes) -> PIL.Image.Image:
        if isinstance(source, cls):
            return source.to_pil()
        if isinstance(source, (str, Path)):
            source = _load_from_file(source)
        if isinstance(source, bytes):
            kind = filetype.guess(source)
            if kind is not None and kind.mime == PDF_MIME_TYPE:
                raise ValueError(
                    "PDF documents have to be rasterized using snapstag.pdf.PdfDocument"
                )
            try:
                handle = PIL.Image.open(io.BytesIO(source))
                handle.load()
            except (PIL.UnidentifiedImageError, OSError) as e:
                raise ValueError("Invalid or damaged image data") from e
        elif isinstance(source, np.ndarray):
            if source.dtype != np.uint8:
                raise ValueError("Only uint8 pixel arrays are supported")
            if source.ndim != 3 or source.shape[2] not in (3, 4):
                raise ValueError(
                    f"Expected an array of shape (height, width, 3|4), got {source.shape}"
                )
            handle = PIL.Image.fromarray(np.ascontiguousarray(source))
        elif isinstance(source, PIL.Image.Image):
            handle = source
        else:
            raise NotImplementedError(f"Unsupported image source {type(source)}")
        if handle.mode not in EIGHT_BIT_PIL_MODES:
            raise ValueError(f"Unsupported pixel mode {handle.mode}, 8 bit required")
        if handle.mode != "RGBA":
            handle = handle.convert("RGBA")
        return handle

    def __repr__(self) -> str:
        return f"Image({self.width}x{self.height})"

    def _repr_png_(self) -> bytes:
        """
        PNG representation for Jupyter

        :return: The PNG data
        """
        return self.to_png()

    @classmethod
    def load_png(cls, path: str | Path) -> Image:
        """
        Loads an image from a PNG file.

        :param path: The file path
        :return: The image
        """
        return cls(Path(path))

    @property
    def size(self) -> tuple[int, int]:
        """
        Returns the image's size in pixels

        :return: The size as tuple (width, height)
        """
        return self.width, self.height

    @property
    def int_size(self) -> IntSize:
        return IntSize(self.width, self.height)

    @property
    def rect(self) -> Rect:
        """The image's natural rectangle at the origin."""
        return self.int_size.rect

    def to_pil(self) -> PIL.Image.Image:
        """
        Returns the PILLOW handle (RGBA). Do not modify it.
        """
        return self._pil_handle

    def get_pixels(self) -> np.ndarray:
        """
        Returns a copy of the pixel data.

        :return: uint8 array of shape (height, width, 4), not premultiplied
        """
        return np.array(self._pil_handle)

    @property
    def pixels(self) -> np.ndarray:
        return self.get_pixels()

    def is_transparent(self) -> bool:
        """
        Returns if any pixel is not fully opaque
        """
        return self._pil_handle.getextrema()[3][0] < 255

    def encode(self, filetype: str = "png") -> bytes:
        """
        Compresses the image.

        :param filetype: The output file type. Only "png" is supported as
            it is lossless.
        :return: The encoded data
        """
        filetype = filetype.lstrip(".").lower()
        if filetype != "png":
            raise ValueError(f"Unsupported output file type {filetype}")
        output_stream = io.BytesIO()
        self._pil_handle.save(output_stream, format="PNG")
        return output_stream.getvalue()

    def to_png(self) -> bytes:
        """
        Encodes the image as png.

        :return: The PNG data
        """
        return self.encode("png")

    def write(self, target: str | Path):
        """
        Encodes the image as PNG and writes it to target.

        :param target: The output file path
        :raises DestinationCreateError: If the output file could not be created
        :raises DestinationFinalizeError: If encoding or flushing the data
            failed
        """
        try:
            output_file = open(target, "wb")
        except OSError as e:
            raise DestinationCreateError(target) from e
        try:
            try:
                self._pil_handle.save(output_file, format="PNG")
                output_file.flush()
            finally:
                output_file.close()
        except (OSError, ValueError) as e:
            self._remove_partial_file(target)
            raise DestinationFinalizeError(target) from e
        logger.debug(f"Wrote {self.width}x{self.height} PNG to {target}")

    @staticmethod
    def _remove_partial_file(target: str | Path):
        try:
            os.remove(target)
        except OSError as e:
            logger.warning(f"Could not remove incomplete file {target}: {e}")

    def redraw(self, background: RGBAPixel | tuple[int, int, int, int]) -> Image:
        """
        Returns a copy of this image drawn on top of a solid background.

        :param background: The background color
        :return: The new image
        """
        from .context import BitmapContext

        with BitmapContext(self.int_size) as ctx:
            ctx.fill_rect(self.rect, RGBAPixel.from_bytes(background))
            ctx.draw_image(self, self.rect)
            return ctx.make_image()

    def diff(self, other: Image) -> Image:
        """
        Returns the visual difference of this image and other.

        See :func:`snapstag.diff.diff_images`.
        """
        from .diff import diff_images

        return diff_images(self, other)

    def rgba_buffer(self) -> RGBABuffer:
        """
        Returns a lazy view of this image's premultiplied RGBA pixel rows.

        See :meth:`snapstag.rgba_buffer.RGBABuffer.from_image`.
        """
        from .rgba_buffer import RGBABuffer

        return RGBABuffer.from_image(self)
