"""Library configuration.

Values can be overridden through environment variables prefixed with
``SNAPSTAG_``, e.g. ``SNAPSTAG_DIFF_ALPHA=0.25``.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """snapstag settings."""

    # Bitmap memory layout
    ROW_ALIGNMENT: int = Field(default=64, ge=4)  # Bytes, rows are padded to this

    # Diff rendering
    DIFF_ALPHA: float = Field(default=0.5, ge=0.0, le=1.0)
    DIFF_BACKDROP: tuple[int, int, int, int] = (255, 255, 255, 255)

    # PDF rasterization
    PDF_SCALE: float = Field(default=1.0, gt=0.0)

    model_config = {"env_prefix": "SNAPSTAG_"}

    @field_validator("ROW_ALIGNMENT")
    @classmethod
    def _whole_pixels(cls, value: int) -> int:
        if value % 4 != 0:
            raise ValueError("ROW_ALIGNMENT has to be a multiple of 4 bytes")
        return value

    @field_validator("DIFF_BACKDROP")
    @classmethod
    def _opaque_channels(cls, value: tuple[int, int, int, int]):
        if any(not 0 <= channel <= 255 for channel in value):
            raise ValueError("DIFF_BACKDROP channels have to be within 0..255")
        if value[3] != 255:
            raise ValueError("DIFF_BACKDROP has to be opaque")
        return value


settings = Settings()
