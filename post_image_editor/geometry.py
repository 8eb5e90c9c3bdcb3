"""
Crop geometry: conversions between the percent, on-screen pixel and
natural-image pixel frames, plus aspect-ratio fitting and clamping.

Everything here is a pure function of its arguments.  Conversions raise
``NotReadyError`` while the image has no displayed size, and
``InvalidAspectError`` for a ratio that is not a positive finite number.
"""

import math

from post_image_editor.config import INITIAL_CROP_PERCENT
from post_image_editor.errors import InvalidAspectError, NotReadyError
from post_image_editor.models import CompletedCrop, PercentCrop, PixelCrop


def _require_size(w: float, h: float, what: str = "displayed"):
    if not (w > 0 and h > 0):
        raise NotReadyError(f"{what} size {w}x{h} is not available yet")


def check_aspect(aspect: float | None):
    """Raise InvalidAspectError unless *aspect* is None (free) or a positive finite number."""
    if aspect is None:
        return
    if isinstance(aspect, bool) or not isinstance(aspect, (int, float)) or not math.isfinite(aspect) or aspect <= 0:
        raise InvalidAspectError(f"aspect ratio must be a positive number, got {aspect!r}")


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


# =============================================================================
# Initial crop
# =============================================================================
def centered_crop(media_w: float, media_h: float, aspect: float | None = None) -> PercentCrop:
    """
    Return the initial crop for an image box of *media_w* × *media_h*.

    With an aspect ratio, the crop is the largest rectangle of that pixel
    aspect fitting in a centered 90% × 90% box, so the limiting dimension
    covers 90%.  Without one, the crop is 90% × 90%.  Either way the crop
    is centered.
    """
    _require_size(media_w, media_h, "media")
    if aspect is None:
        width_pct = height_pct = INITIAL_CROP_PERCENT
    else:
        check_aspect(aspect)
        box_w = media_w * INITIAL_CROP_PERCENT / 100
        box_h = media_h * INITIAL_CROP_PERCENT / 100
        crop_w = box_w
        crop_h = crop_w / aspect
        if crop_h > box_h:
            crop_h = box_h
            crop_w = crop_h * aspect
        width_pct = crop_w / media_w * 100
        height_pct = crop_h / media_h * 100

    return PercentCrop(
        x=(100 - width_pct) / 2,
        y=(100 - height_pct) / 2,
        width=width_pct,
        height=height_pct,
    )


# =============================================================================
# Frame conversions
# =============================================================================
def to_pixel_crop(crop: PercentCrop, displayed_w: float, displayed_h: float) -> PixelCrop:
    """Percent crop → on-screen pixels."""
    _require_size(displayed_w, displayed_h)
    return PixelCrop(
        x=crop.x * displayed_w / 100,
        y=crop.y * displayed_h / 100,
        width=crop.width * displayed_w / 100,
        height=crop.height * displayed_h / 100,
    )


def to_percent_crop(crop: PixelCrop, displayed_w: float, displayed_h: float) -> PercentCrop:
    """On-screen pixels → percent crop. Inverse of ``to_pixel_crop``."""
    _require_size(displayed_w, displayed_h)
    return PercentCrop(
        x=crop.x / displayed_w * 100,
        y=crop.y / displayed_h * 100,
        width=crop.width / displayed_w * 100,
        height=crop.height / displayed_h * 100,
    )


def to_natural_crop(
    crop: PixelCrop,
    displayed_w: float, displayed_h: float,
    natural_w: int, natural_h: int,
) -> CompletedCrop:
    """
    On-screen pixels → natural image pixels.

    X and Y use independent factors (``natural_w / displayed_w`` and
    ``natural_h / displayed_h``) since the preview need not be scaled
    uniformly.  Each field is rounded to the nearest integer and the
    result is clamped inside the natural image.
    """
    _require_size(displayed_w, displayed_h)
    _require_size(natural_w, natural_h, "natural")
    scale_x = natural_w / displayed_w
    scale_y = natural_h / displayed_h

    x = int(_clamp(round(crop.x * scale_x), 0, natural_w))
    y = int(_clamp(round(crop.y * scale_y), 0, natural_h))
    w = int(_clamp(round(crop.width * scale_x), 0, natural_w - x))
    h = int(_clamp(round(crop.height * scale_y), 0, natural_h - y))
    return CompletedCrop(x, y, w, h)


def crop_aspect(crop: PercentCrop, media_w: float, media_h: float) -> float:
    """Pixel aspect (width / height) of a percent crop on a *media_w* × *media_h* box."""
    _require_size(media_w, media_h, "media")
    if crop.height <= 0:
        raise InvalidAspectError("crop has zero height")
    return (crop.width * media_w) / (crop.height * media_h)


# =============================================================================
# Clamping & constraints
# =============================================================================
def clamp_percent_crop(crop: PercentCrop) -> PercentCrop:
    """Shrink a crop to at most 100% and move it inside ``[0, 100]²``."""
    w = _clamp(crop.width, 0.0, 100.0)
    h = _clamp(crop.height, 0.0, 100.0)
    x = _clamp(crop.x, 0.0, 100.0 - w)
    y = _clamp(crop.y, 0.0, 100.0 - h)
    return PercentCrop(x, y, w, h)


def enforce_min_size(
    crop: PercentCrop, min_w: float, min_h: float,
    displayed_w: float, displayed_h: float,
) -> PercentCrop:
    """
    Grow a crop to at least *min_w* × *min_h* displayed pixels.

    The minimum is capped at the image size; a crop that grows past the
    right or bottom edge is shifted back inside.
    """
    _require_size(displayed_w, displayed_h)
    min_w_pct = min(100.0, min_w / displayed_w * 100)
    min_h_pct = min(100.0, min_h / displayed_h * 100)
    grown = PercentCrop(
        crop.x, crop.y,
        max(crop.width, min_w_pct),
        max(crop.height, min_h_pct),
    )
    return clamp_percent_crop(grown)


def constrain_to_aspect(
    crop: PercentCrop, aspect: float,
    displayed_w: float, displayed_h: float,
    min_w: float = 0.0, min_h: float = 0.0,
) -> PercentCrop:
    """
    Snap a crop to *aspect* (pixel width / height), keeping its top-left.

    The height follows the width.  When that height would leave the image,
    it is clamped to the remaining space and the width is derived from
    it instead, so the ratio always holds.

    With *min_w* / *min_h* (displayed pixels) the snapped crop is never
    smaller than either minimum; if the room left at its top-left is too
    small, the crop is moved up or left instead of shrunk.  Both minimums
    are capped at the largest crop of this ratio that fits the image.
    """
    _require_size(displayed_w, displayed_h)
    check_aspect(aspect)
    crop = clamp_percent_crop(crop)

    fit_w = min(displayed_w, displayed_h * aspect)
    floor_w = min(max(min_w, min_h * aspect), fit_w)

    px_w = max(crop.width * displayed_w / 100, floor_w)
    px_h = px_w / aspect
    max_h = (100 - crop.y) * displayed_h / 100
    if px_h > max_h:
        px_h = max(max_h, floor_w / aspect)
        px_w = px_h * aspect
    max_w = (100 - crop.x) * displayed_w / 100
    if px_w > max_w:
        px_w = max(max_w, floor_w)
        px_h = px_w / aspect
    px_w = min(px_w, fit_w)
    px_h = px_w / aspect

    w = px_w / displayed_w * 100
    h = px_h / displayed_h * 100
    return PercentCrop(
        _clamp(crop.x, 0.0, max(0.0, 100.0 - w)),
        _clamp(crop.y, 0.0, max(0.0, 100.0 - h)),
        w, h,
    )
