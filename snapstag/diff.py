"""Visual difference images and pixel comparison of two renderings.

Both functions accept images of different sizes. The result canvas always has
the union size of both inputs, so a rendering regression which changes the
output dimensions still produces a meaningful diff.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np

from .config import settings
from .context import BitmapContext, BlendMode
from .geometry import IntSize
from .image import Image
from .rgba_buffer import RGBABuffer

logger = logging.getLogger(__name__)


class ComparisonResult(NamedTuple):
    """Result of comparing two images."""
    match: bool
    diff_ratio: float
    diff_count: int
    total_pixels: int
    message: str
    max_diff: int = 0  # Maximum per-channel difference (0-255)


def diff_images(lhs: Image, rhs: Image) -> Image:
    """
    Renders the visual difference of two images.

    The canvas has the union size of both images. lhs is drawn first, then
    rhs is merged in an isolated layer with the difference blend mode at
    settings.DIFF_ALPHA against an opaque white backdrop:

    - pixels covered by both images show white where they are identical and
      a darker tone the more they differ
    - pixels covered only by lhs show lhs over white
    - pixels covered only by rhs show rhs at half strength over white
    - pixels covered by neither image are white

    :param lhs: The first (e.g. expected) image
    :param rhs: The second (e.g. actual) image
    :return: The difference image
    :raises ImageFinalizeError: If the composite can not be finalized. This
        indicates an environment failure and is not recoverable.
    """
    size = IntSize.union(lhs.int_size, rhs.int_size)
    logger.debug(
        f"Diffing {lhs.width}x{lhs.height} with {rhs.width}x{rhs.height} "
        f"on a {size.width}x{size.height} canvas"
    )
    with BitmapContext(size) as ctx:
        ctx.draw_image(lhs, lhs.rect)
        ctx.set_alpha(settings.DIFF_ALPHA)
        ctx.set_blend_mode(BlendMode.DIFFERENCE)
        with ctx.transparency_layer():
            ctx.draw_image(rhs, rhs.rect)
            ctx.set_layer_backdrop(settings.DIFF_BACKDROP)
        return ctx.make_image()


def _union_pixels(buffer: RGBABuffer, size: IntSize) -> tuple[np.ndarray, np.ndarray]:
    """
    Places a buffer's pixels on a transparent canvas of given size.

    :return: The pixels as int16 and a mask of the covered area
    """
    pixels = np.zeros((size.height, size.width, 4), dtype=np.int16)
    covered = np.zeros((size.height, size.width), dtype=bool)
    width, height = buffer.size.to_tuple()
    pixels[:height, :width] = buffer.to_numpy()
    covered[:height, :width] = True
    return pixels, covered


def compare_images(lhs: Image, rhs: Image, tolerance: int = 0) -> ComparisonResult:
    """
    Counts the pixels which differ between two images.

    The comparison happens on the premultiplied pixels of the union canvas.
    Pixels present in only one of both images always count as different.

    :param lhs: The first image
    :param rhs: The second image
    :param tolerance: The maximum per-channel difference (0-255) for two
        pixels to still be considered equal
    :return: The comparison result
    """
    if not 0 <= tolerance <= 255:
        raise ValueError(f"Tolerance has to be within 0 and 255, got {tolerance}")
    size = IntSize.union(lhs.int_size, rhs.int_size)
    with lhs.rgba_buffer() as lhs_buffer, rhs.rgba_buffer() as rhs_buffer:
        lhs_pixels, lhs_covered = _union_pixels(lhs_buffer, size)
        rhs_pixels, rhs_covered = _union_pixels(rhs_buffer, size)
    channel_diff = np.abs(lhs_pixels - rhs_pixels).max(axis=2)
    differs = (channel_diff > tolerance) | (lhs_covered != rhs_covered)
    total_pixels = size.area
    diff_count = int(differs.sum())
    diff_ratio = diff_count / total_pixels if total_pixels > 0 else 0.0
    max_diff = int(channel_diff.max()) if total_pixels > 0 else 0
    match = diff_count == 0
    if lhs.int_size != rhs.int_size:
        message = (
            f"Size mismatch {lhs.width}x{lhs.height} vs {rhs.width}x{rhs.height}, "
            f"{diff_count} of {total_pixels} pixels differ"
        )
    elif match:
        message = "Images match"
    else:
        message = (
            f"{diff_count} of {total_pixels} pixels differ "
            f"({diff_ratio * 100:.2f}%, max channel diff {max_diff})"
        )
    logger.debug(message)
    return ComparisonResult(
        match=match,
        diff_ratio=diff_ratio,
        diff_count=diff_count,
        total_pixels=total_pixels,
        message=message,
        max_diff=max_diff,
    )
