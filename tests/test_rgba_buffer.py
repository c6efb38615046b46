"""
Tests the lazy pixel row view snapstag.rgba_buffer.RGBABuffer
"""

import gc

import numpy as np
import pytest

from snapstag import (
    BitmapContext,
    BufferGeometryError,
    Image,
    IntSize,
    RGBABuffer,
    RGBAPixel,
)


def counting_release():
    """Returns a release callback and the list recording its calls."""
    calls = []
    return (lambda: calls.append(1)), calls


@pytest.fixture
def padded_raw() -> bytearray:
    """Two rows of 3 pixels with 16 bytes per row, every byte unique."""
    return bytearray(range(32))


class TestGeometry:
    """Tests buffer geometry and validation."""

    @pytest.mark.parametrize(
        "width,height,bytes_per_row",
        [(1, 1, 4), (3, 2, 16), (5, 3, 20), (2, 4, 64), (0, 3, 8), (4, 0, 16)],
    )
    def test_decoded_bytes_match_raw_layout(self, width, height, bytes_per_row):
        """Pixel j of row i maps to bytes i*bytes_per_row + j*4 + k."""
        raw = bytearray(
            (index * 7) % 256 for index in range(height * bytes_per_row)
        )
        buffer = RGBABuffer(raw, width, height, bytes_per_row)
        rows = list(buffer.rows)
        assert len(rows) == height
        for i, row in enumerate(rows):
            assert len(row) == width
            for j, pixel in enumerate(row):
                for k in range(4):
                    assert pixel[k] == raw[i * bytes_per_row + j * 4 + k]

    def test_size_excludes_padding(self, padded_raw):
        buffer = RGBABuffer(padded_raw, 3, 2, 16)
        assert buffer.size == IntSize(3, 2)
        assert buffer.bytes_per_row == 16

    def test_padding_is_never_exposed(self, padded_raw):
        """Width 3 with 16 bytes per row hides bytes 12..15 of each row."""
        buffer = RGBABuffer(padded_raw, 3, 2, 16)
        first, second = buffer.rows
        assert list(first) == [
            RGBAPixel(0, 1, 2, 3),
            RGBAPixel(4, 5, 6, 7),
            RGBAPixel(8, 9, 10, 11),
        ]
        assert list(second) == [
            RGBAPixel(16, 17, 18, 19),
            RGBAPixel(20, 21, 22, 23),
            RGBAPixel(24, 25, 26, 27),
        ]
        with pytest.raises(IndexError):
            first[3]

    def test_stride_too_small(self):
        with pytest.raises(BufferGeometryError):
            RGBABuffer(bytearray(64), 4, 2, 12)

    def test_buffer_too_small(self):
        with pytest.raises(BufferGeometryError):
            RGBABuffer(bytearray(31), 3, 2, 16)

    def test_negative_size(self):
        with pytest.raises(BufferGeometryError):
            RGBABuffer(bytearray(16), -1, 1, 16)

    def test_geometry_error_is_value_error(self):
        with pytest.raises(ValueError):
            RGBABuffer(bytearray(4), 2, 1, 4)


class TestTraversal:
    """Tests the lazy, restartable rows sequence."""

    def test_retraversal_is_identical(self, padded_raw):
        buffer = RGBABuffer(padded_raw, 3, 2, 16)
        first_pass = [list(row) for row in buffer.rows]
        second_pass = [list(row) for row in buffer.rows]
        assert first_pass == second_pass
        assert [list(row) for row in buffer] == first_pass

    def test_decoding_happens_on_access(self, padded_raw):
        """Rows read the backing buffer when consumed, they are no copies."""
        buffer = RGBABuffer(padded_raw, 3, 2, 16)
        rows = buffer.rows
        row = rows[1]
        padded_raw[16:20] = b"\xff\xfe\xfd\xfc"
        assert row[0] == RGBAPixel(255, 254, 253, 252)
        assert next(iter(rows[1])) == RGBAPixel(255, 254, 253, 252)

    def test_indexing(self, padded_raw):
        buffer = RGBABuffer(padded_raw, 3, 2, 16)
        assert buffer.pixel(2, 1) == RGBAPixel(24, 25, 26, 27)
        assert buffer.row(-1)[-1] == RGBAPixel(24, 25, 26, 27)
        assert buffer.rows[0][1:] == [RGBAPixel(4, 5, 6, 7), RGBAPixel(8, 9, 10, 11)]
        assert len(buffer.rows[0:1]) == 1
        with pytest.raises(IndexError):
            buffer.rows[2]

    def test_to_numpy_shares_memory(self, padded_raw):
        buffer = RGBABuffer(padded_raw, 3, 2, 16)
        array = buffer.to_numpy()
        assert array.shape == (2, 3, 4)
        assert tuple(array[1, 2]) == (24, 25, 26, 27)
        padded_raw[0] = 200
        assert array[0, 0, 0] == 200
        assert not array.flags.writeable

    def test_read_only_source(self):
        buffer = RGBABuffer(bytes(range(8)), 2, 1, 8)
        assert list(buffer.rows[0]) == [RGBAPixel(0, 1, 2, 3), RGBAPixel(4, 5, 6, 7)]


class TestLifetime:
    """Tests the release of the backing allocation."""

    def test_close_releases_once(self, padded_raw):
        release, calls = counting_release()
        buffer = RGBABuffer(padded_raw, 3, 2, 16, release=release)
        assert not buffer.closed
        buffer.close()
        buffer.close()
        assert calls == [1]
        assert buffer.closed

    def test_context_manager_releases(self, padded_raw):
        release, calls = counting_release()
        with RGBABuffer(padded_raw, 3, 2, 16, release=release) as buffer:
            assert buffer.pixel(0, 0) == RGBAPixel(0, 1, 2, 3)
        assert calls == [1]

    def test_garbage_collection_releases(self, padded_raw):
        release, calls = counting_release()
        buffer = RGBABuffer(padded_raw, 3, 2, 16, release=release)
        del buffer
        gc.collect()
        assert calls == [1]

    def test_closed_buffer_can_not_be_read(self, padded_raw):
        buffer = RGBABuffer(padded_raw, 3, 2, 16)
        row = buffer.rows[0]
        buffer.close()
        with pytest.raises(ValueError):
            buffer.rows
        with pytest.raises(ValueError):
            row[0]
        with pytest.raises(ValueError):
            buffer.to_numpy()

    def test_from_context_closes_context(self):
        ctx = BitmapContext(IntSize(3, 2))
        buffer = RGBABuffer.from_context(ctx)
        assert buffer.bytes_per_row == ctx.bytes_per_row
        assert buffer.pixel(0, 0) == RGBAPixel(0, 0, 0, 0)
        assert not ctx.closed
        buffer.close()
        assert ctx.closed


class TestFromImage:
    """Tests views created from images."""

    def test_pixels_match_image(self, gradient_image):
        with RGBABuffer.from_image(gradient_image) as buffer:
            assert buffer.size == IntSize(7, 5)
            assert buffer.bytes_per_row > 7 * 4
            expected = gradient_image.get_pixels()
            for y, row in enumerate(buffer.rows):
                for x, pixel in enumerate(row):
                    assert pixel == RGBAPixel(*(int(v) for v in expected[y, x]))
            assert np.array_equal(buffer.to_numpy(), expected)

    def test_pixels_are_premultiplied(self, solid_image):
        image = solid_image(2, 2, (255, 0, 0, 128))
        with image.rgba_buffer() as buffer:
            assert buffer.pixel(1, 1) == RGBAPixel(128, 0, 0, 128)

    @pytest.mark.parametrize("size", [(0, 5), (5, 0)])
    def test_empty_image(self, size):
        with Image(size=size).rgba_buffer() as buffer:
            assert buffer.size == IntSize(*size)
            assert len(buffer.rows) == size[1]
            assert buffer.to_numpy().shape == (size[1], size[0], 4)
