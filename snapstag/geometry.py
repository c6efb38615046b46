# snapstag - Geometry helpers
"""
Integer sizes, rectangles and affine transforms used to size bitmap contexts
and to place images within them.

Coordinates follow the raster convention: the origin is the top-left corner
and y grows downwards.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Rect:
    """An axis-aligned rectangle."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def x2(self) -> float:
        """Right edge coordinate."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge coordinate."""
        return self.y + self.height

    @property
    def size(self) -> tuple[float, float]:
        return self.width, self.height

    def to_int_tuple(self) -> tuple[int, int, int, int]:
        """Return (x, y, width, height) rounded to whole pixels."""
        x, y = int(round(self.x)), int(round(self.y))
        return x, y, int(round(self.x2)) - x, int(round(self.y2)) - y


@dataclass(frozen=True)
class IntSize:
    """A size in whole pixels.

    :ivar width: Width in pixels, never negative
    :ivar height: Height in pixels, never negative
    """

    width: int
    height: int

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Sizes can not be negative, got {self.width}x{self.height}"
            )

    @classmethod
    def from_size(cls, width: float, height: float) -> IntSize:
        """
        Converts a floating point size to whole pixels, truncating fractions.

        :param width: The width, e.g. a PDF page width after scaling
        :param height: The height
        :return: The integer size
        """
        return cls(int(width), int(height))

    @classmethod
    def square(cls, dim: int) -> IntSize:
        return cls(dim, dim)

    @staticmethod
    def union(lhs: IntSize, rhs: IntSize) -> IntSize:
        """
        Returns the smallest size containing both sizes (component-wise max).

        :param lhs: The first size
        :param rhs: The second size
        :return: The union size
        """
        return IntSize(max(lhs.width, rhs.width), max(lhs.height, rhs.height))

    @property
    def rect(self) -> Rect:
        """The rectangle of this size placed at the origin."""
        return Rect(0, 0, self.width, self.height)

    @property
    def area(self) -> int:
        return self.width * self.height

    def to_tuple(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class AffineTransform:
    """
    A 2D affine transform mapping (x, y) to
    (a*x + c*y + tx, b*x + d*y + ty).
    """

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    @classmethod
    def identity(cls) -> AffineTransform:
        return cls()

    @classmethod
    def scale(cls, sx: float, sy: float | None = None) -> AffineTransform:
        """
        Creates a scaling transform.

        :param sx: The horizontal factor
        :param sy: The vertical factor. Same as sx if omitted.
        """
        return cls(a=sx, d=sx if sy is None else sy)

    @classmethod
    def translation(cls, tx: float, ty: float) -> AffineTransform:
        return cls(tx=tx, ty=ty)

    @classmethod
    def invert_y_axis(cls, height: float) -> AffineTransform:
        """
        Maps coordinates of a bottom-left origin system of given height
        onto the top-left origin raster system (and vice versa).
        """
        return cls(d=-1.0).concatenating(cls.translation(0.0, height))

    def concatenating(self, other: AffineTransform) -> AffineTransform:
        """
        Returns the transform applying this transform first, then other.

        :param other: The transform applied afterwards
        :return: The combined transform
        """
        return AffineTransform(
            a=self.a * other.a + self.b * other.c,
            b=self.a * other.b + self.b * other.d,
            c=self.c * other.a + self.d * other.c,
            d=self.c * other.b + self.d * other.d,
            tx=self.tx * other.a + self.ty * other.c + other.tx,
            ty=self.tx * other.b + self.ty * other.d + other.ty,
        )

    @property
    def is_identity(self) -> bool:
        return self == AffineTransform()

    @property
    def is_axis_aligned(self) -> bool:
        """True if the transform neither rotates nor shears."""
        return self.b == 0 and self.c == 0

    def apply_to_point(self, x: float, y: float) -> tuple[float, float]:
        return (
            self.a * x + self.c * y + self.tx,
            self.b * x + self.d * y + self.ty,
        )

    def apply_to_rect(self, rect: Rect) -> Rect:
        """
        Transforms a rectangle and returns the bounding box of the result.

        :param rect: The source rectangle
        :return: The transformed, normalized rectangle
        """
        corners = [
            self.apply_to_point(x, y)
            for x in (rect.x, rect.x2)
            for y in (rect.y, rect.y2)
        ]
        xs = [corner[0] for corner in corners]
        ys = [corner[1] for corner in corners]
        return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def is_close(self, other: AffineTransform, rel_tol: float = 1e-9) -> bool:
        return all(
            math.isclose(lhs, rhs, rel_tol=rel_tol, abs_tol=rel_tol)
            for lhs, rhs in zip(
                (self.a, self.b, self.c, self.d, self.tx, self.ty),
                (other.a, other.b, other.c, other.d, other.tx, other.ty),
            )
        )
