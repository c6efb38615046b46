"""
Defines :class:`RGBAPixel`, a single pixel of an 8 bit per channel RGBA bitmap.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple

from .exceptions import PixelDecodeError

CHANNEL_COUNT = 4
"Number of bytes per RGBA pixel"


class RGBAPixel(NamedTuple):
    """A pixel made of four 8 bit channels in R, G, B, A order."""

    red: int
    green: int
    blue: int
    alpha: int

    @classmethod
    def from_bytes(cls, piece: Iterable[int]) -> RGBAPixel:
        """
        Decodes a pixel from the first four values of a byte sequence.

        :param piece: Bytes in R, G, B, A order, e.g. a memoryview slice
        :return: The pixel
        :raises PixelDecodeError: If less than four values are available or
            a value is not a valid 8 bit channel
        """
        it = iter(piece)
        channels = []
        for _ in range(CHANNEL_COUNT):
            try:
                channels.append(next(it))
            except StopIteration:
                raise PixelDecodeError(
                    f"A pixel requires {CHANNEL_COUNT} bytes, got {len(channels)}"
                ) from None
        if any(not 0 <= value <= 255 for value in channels):
            raise PixelDecodeError(f"Invalid 8 bit channel values {channels}")
        return cls(*channels)

    @property
    def is_opaque(self) -> bool:
        return self.alpha == 255

    def to_float(self) -> tuple[float, float, float, float]:
        """Returns the channels normalized to 0.0 .. 1.0"""
        return (
            self.red / 255.0,
            self.green / 255.0,
            self.blue / 255.0,
            self.alpha / 255.0,
        )


TRANSPARENT = RGBAPixel(0, 0, 0, 0)
BLACK = RGBAPixel(0, 0, 0, 255)
WHITE = RGBAPixel(255, 255, 255, 255)
