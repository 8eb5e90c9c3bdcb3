"""
Per-session edit state: crop, aspect constraint and transform parameters.

``TransformState`` is mutated only through its methods, each of which
keeps the crop inside ``[0, 100]²`` and, when an aspect constraint is
active, at that ratio.  Geometry errors never escape: a mutation that
cannot be applied is rejected and the previous state is kept.
"""

import logging
import math

from post_image_editor import geometry
from post_image_editor.config import SCALE_HARD_LIMITS
from post_image_editor.errors import GeometryError, NotReadyError
from post_image_editor.models import EditorConfig, PercentCrop, PixelCrop, TransformParams

logger = logging.getLogger(__name__)


class TransformState:
    """Current crop, aspect and transform of one editor session."""

    def __init__(self, config: EditorConfig | None = None):
        self._config = config or EditorConfig()
        self._crop: PercentCrop | None = None
        self._aspect: float | None = None
        self._transform = TransformParams()
        self._display_w = 0.0
        self._display_h = 0.0
        self._dragging = False

    # --- Read-only views ---

    @property
    def crop(self) -> PercentCrop | None:
        return self._crop.copy() if self._crop else None

    @property
    def aspect(self) -> float | None:
        return self._aspect

    @property
    def transform(self) -> TransformParams:
        return self._transform.copy()

    @property
    def display_size(self) -> tuple[float, float]:
        return self._display_w, self._display_h

    @property
    def is_ready(self) -> bool:
        return self._display_w > 0 and self._display_h > 0

    @property
    def is_dragging(self) -> bool:
        return self._dragging

    def pixel_crop(self) -> PixelCrop | None:
        """Current crop in on-screen pixels, or None without a crop or display."""
        if self._crop is None or not self.is_ready:
            return None
        return geometry.to_pixel_crop(self._crop, self._display_w, self._display_h)

    # --- Display ---

    def set_display_size(self, width: float, height: float):
        """Record the displayed image box; derive the initial crop if there is none."""
        self._display_w = float(width)
        self._display_h = float(height)
        if self._crop is None and self.is_ready:
            self._crop = geometry.centered_crop(self._display_w, self._display_h, self._aspect)
            logger.debug("Initial crop %s for display %sx%s", self._crop, width, height)

    # --- Crop ---

    def set_aspect(self, ratio: float | None) -> bool:
        """
        Switch the aspect constraint and recenter the crop.

        Rotation, flips and scale are kept.  Returns False (state untouched)
        for an invalid ratio.  If the display is not ready, the ratio is
        kept and the crop is derived by the next ``set_display_size``.
        """
        try:
            geometry.check_aspect(ratio)
            new_crop = None
            if self.is_ready:
                new_crop = geometry.centered_crop(self._display_w, self._display_h, ratio)
        except GeometryError as exc:
            logger.warning("Rejected aspect ratio %r: %s", ratio, exc)
            return False

        self._aspect = ratio
        self._crop = new_crop
        self._dragging = False
        return True

    def begin_drag(self):
        self._dragging = True

    def end_drag(self):
        self._dragging = False

    def set_crop(self, rect: PercentCrop) -> bool:
        """
        Apply a user-proposed crop after clamping, minimum-size and aspect snapping.

        Never raises.  Returns False, keeping the previous crop, only when
        the display size is unknown.
        """
        try:
            crop = geometry.clamp_percent_crop(rect)
            min_w, min_h = self._config.min_crop_pixels
            crop = geometry.enforce_min_size(crop, min_w, min_h, self._display_w, self._display_h)
            if self._aspect is not None:
                crop = geometry.constrain_to_aspect(
                    crop, self._aspect, self._display_w, self._display_h, min_w, min_h,
                )
        except NotReadyError as exc:
            logger.debug("Ignored crop %s: %s", rect, exc)
            return False
        self._crop = crop
        return True

    # --- Transform ---

    def rotate(self, delta_degrees: float):
        """Add to the rotation; the value is left unnormalized. Non-finite deltas are ignored."""
        if not math.isfinite(delta_degrees):
            logger.debug("Ignored non-finite rotation %r", delta_degrees)
            return
        self._transform.rotation += delta_degrees

    def toggle_flip_horizontal(self):
        self._transform.flip_horizontal = not self._transform.flip_horizontal

    def toggle_flip_vertical(self):
        self._transform.flip_vertical = not self._transform.flip_vertical

    def set_scale(self, value: float) -> float:
        """Clamp *value* into the configured range and apply it. Returns the applied scale."""
        if not math.isfinite(value):
            logger.debug("Ignored non-finite scale %r", value)
            return self._transform.scale
        lo, hi = self._config.scale_range
        lo = max(lo, SCALE_HARD_LIMITS[0])
        hi = min(hi, SCALE_HARD_LIMITS[1])
        self._transform.scale = max(lo, min(value, hi))
        return self._transform.scale

    def reset(self):
        """Identity transform and no crop; the caller re-derives the crop."""
        self._transform = TransformParams()
        self._crop = None
        self._dragging = False
