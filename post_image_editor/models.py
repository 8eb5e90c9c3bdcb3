"""
Data models shared by the geometry engine, transform state, compositor
and editor shell.

A crop exists in three coordinate frames: ``PercentCrop`` (relative to the
displayed image box, what the crop overlay edits), ``PixelCrop`` (on-screen
pixels) and ``CompletedCrop`` (integer pixels of the natural image, what the
compositor samples).  The conversion functions live in ``geometry``.
"""

import base64
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from post_image_editor.config import (
    DEFAULT_ASPECT_PRESETS, FILE_EXTENSIONS, JPEG_QUALITY_DEFAULT,
    JPEG_SUBSAMPLING_DEFAULT, MIME_TYPES, MIN_CROP_SIZE, OUTPUT_FORMATS,
    OUTPUT_FORMAT_DEFAULT, PNG_COMPRESS_LEVEL, SCALE_HARD_LIMITS,
    SCALE_RANGE_DEFAULT,
)


# =============================================================================
# Source image
# =============================================================================
@dataclass(frozen=True)
class ImageResource:
    """A loaded source image. ``bitmap`` is None until decoded."""
    natural_width: int
    natural_height: int
    bitmap: Image.Image | None = None
    source: str | None = None
    name: str = "image"

    @property
    def natural_size(self) -> tuple[int, int]:
        return self.natural_width, self.natural_height


# =============================================================================
# Crop rectangles
# =============================================================================
@dataclass
class PercentCrop:
    """Crop rectangle in percent of the displayed image box."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    unit: str = field(default="%", init=False)

    def copy(self) -> "PercentCrop":
        return PercentCrop(self.x, self.y, self.width, self.height)


@dataclass
class PixelCrop:
    """Crop rectangle in on-screen (displayed) pixels."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class CompletedCrop:
    """Crop rectangle in natural image pixels; the compositor's input."""
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_box(self) -> tuple[int, int, int, int]:
        """Return the Pillow ``(left, top, right, bottom)`` box."""
        return self.x, self.y, self.x + self.width, self.y + self.height


# =============================================================================
# Transform & presets
# =============================================================================
@dataclass
class TransformParams:
    """Rotation (degrees, unbounded), flips and uniform scale."""
    rotation: float = 0.0
    flip_horizontal: bool = False
    flip_vertical: bool = False
    scale: float = 1.0

    @property
    def is_identity(self) -> bool:
        return (
            self.rotation % 360 == 0
            and not self.flip_horizontal
            and not self.flip_vertical
            and self.scale == 1.0
        )

    def copy(self) -> "TransformParams":
        return TransformParams(self.rotation, self.flip_horizontal, self.flip_vertical, self.scale)


@dataclass(frozen=True)
class AspectPreset:
    """A named aspect-ratio button. ``ratio`` is width / height, None is free."""
    name: str
    ratio: float | None = None


# =============================================================================
# Configuration
# =============================================================================
@dataclass
class OutputOptions:
    """Encoding settings for the rendered image."""
    format: str = OUTPUT_FORMAT_DEFAULT
    compress_level: int = PNG_COMPRESS_LEVEL
    jpeg_quality: int = JPEG_QUALITY_DEFAULT
    jpeg_subsampling: str = JPEG_SUBSAMPLING_DEFAULT
    jpeg_optimize: bool = True

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.format]

    @property
    def extension(self) -> str:
        return FILE_EXTENSIONS[self.format]


def _default_presets() -> list[AspectPreset]:
    # Imported lazily: presets imports models for AspectPreset.
    from post_image_editor.presets import presets_from_dicts
    return presets_from_dicts(DEFAULT_ASPECT_PRESETS)


@dataclass
class EditorConfig:
    """Options recognized at editor construction."""
    aspect_presets: list[AspectPreset] = field(default_factory=_default_presets)
    min_crop_pixels: tuple[int, int] = (MIN_CROP_SIZE, MIN_CROP_SIZE)
    scale_range: tuple[float, float] = SCALE_RANGE_DEFAULT
    output: OutputOptions = field(default_factory=OutputOptions)

    def __post_init__(self):
        lo, hi = self.scale_range
        hard_lo, hard_hi = SCALE_HARD_LIMITS
        if not (hard_lo <= lo < hi <= hard_hi):
            raise ValueError(
                f"scale_range must satisfy {hard_lo} <= min < max <= {hard_hi}, got {self.scale_range!r}"
            )
        min_w, min_h = self.min_crop_pixels
        if min_w < 1 or min_h < 1:
            raise ValueError(f"min_crop_pixels must be positive, got {self.min_crop_pixels!r}")
        if self.output.format not in OUTPUT_FORMATS:
            raise ValueError(f"output format must be one of {OUTPUT_FORMATS}, got {self.output.format!r}")


# =============================================================================
# Results
# =============================================================================
@dataclass(frozen=True)
class RenderedImage:
    """
    Encoded raster produced by the compositor.

    Rendering hands back bytes only.  A host that needs an addressable
    resource (an ``<img>`` source, a clipboard payload) takes one from
    ``to_data_url``; nothing is allocated that the caller must release.
    """
    data: bytes
    mime_type: str
    width: int
    height: int

    def to_data_url(self) -> str:
        return _data_url(self.data, self.mime_type)


@dataclass(frozen=True)
class EditResult:
    """What a save hands to the caller: encoded bytes plus the crop used."""
    data: bytes
    mime_type: str
    crop: CompletedCrop

    def suggested_filename(self, name: str) -> str:
        """``photo`` → ``photo-edited.png`` (extension follows the MIME type)."""
        ext = next((e for fmt, e in FILE_EXTENSIONS.items() if MIME_TYPES[fmt] == self.mime_type), ".png")
        return f"{Path(name).stem}-edited{ext}"

    def to_data_url(self) -> str:
        """``data:<mime>;base64,...`` URL for the encoded bytes."""
        return _data_url(self.data, self.mime_type)


def _data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
