"""
Pytest fixtures for snapstag tests
"""

import fitz  # PyMuPDF
import numpy as np
import pytest

from snapstag import Image


def make_solid_image(width: int, height: int, color) -> Image:
    """Create a solid color image of given size."""
    data = np.zeros((height, width, 4), dtype=np.uint8)
    data[:, :] = color
    return Image(data)


@pytest.fixture
def solid_image():
    """Factory for solid color images."""
    return make_solid_image


@pytest.fixture
def gradient_image() -> Image:
    """Create an opaque 7x5 image where every pixel has a unique color."""
    data = np.zeros((5, 7, 4), dtype=np.uint8)
    for y in range(5):
        for x in range(7):
            data[y, x] = (x * 30, y * 50, (x + y) * 10, 255)
    return Image(data)


@pytest.fixture(scope="module")
def sample_pdf_bytes() -> bytes:
    """
    A two page PDF. Page 1 (100x50 pt) has a red square from (10, 10) to
    (40, 30), page 2 (60x60 pt) is blank.
    """
    document = fitz.open()
    page = document.new_page(width=100, height=50)
    page.draw_rect(fitz.Rect(10, 10, 40, 30), color=(1, 0, 0), fill=(1, 0, 0))
    document.new_page(width=60, height=60)
    data = document.tobytes()
    document.close()
    return data


@pytest.fixture
def sample_pdf_path(tmp_path, sample_pdf_bytes):
    path = tmp_path / "sample.pdf"
    path.write_bytes(sample_pdf_bytes)
    return path
