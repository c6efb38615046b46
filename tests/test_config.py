"""
Tests for the snapstag settings
"""

import pytest
from pydantic import ValidationError

from snapstag import BitmapContext, Settings


def test_defaults():
    settings = Settings()
    assert settings.ROW_ALIGNMENT == 64
    assert settings.DIFF_ALPHA == 0.5
    assert settings.DIFF_BACKDROP == (255, 255, 255, 255)
    assert settings.PDF_SCALE == 1.0


def test_environment_override(monkeypatch):
    monkeypatch.setenv("SNAPSTAG_DIFF_ALPHA", "0.25")
    monkeypatch.setenv("SNAPSTAG_ROW_ALIGNMENT", "16")
    settings = Settings()
    assert settings.DIFF_ALPHA == 0.25
    assert settings.ROW_ALIGNMENT == 16


@pytest.mark.parametrize(
    "values",
    [
        {"ROW_ALIGNMENT": 6},
        {"ROW_ALIGNMENT": 0},
        {"DIFF_ALPHA": 1.5},
        {"DIFF_BACKDROP": (255, 255, 255, 0)},
        {"DIFF_BACKDROP": (300, 0, 0, 255)},
        {"PDF_SCALE": 0.0},
    ],
)
def test_invalid_values(values):
    with pytest.raises(ValidationError):
        Settings(**values)


def test_row_alignment_is_used(monkeypatch):
    from snapstag import settings

    monkeypatch.setattr(settings, "ROW_ALIGNMENT", 16)
    with BitmapContext((5, 1)) as ctx:
        assert ctx.bytes_per_row == 32
