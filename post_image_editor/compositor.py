"""
Rasterize the edited image at natural resolution.

The output surface is the crop's own size in natural pixels.  The cropped
source region is drawn onto it through the canvas matrix::

    T(center) · R(rotation) · S(flip_x · scale, flip_y · scale) · T(-center)

Flip and scale form one scale step applied after the rotation in the
matrix product, so a flip mirrors the content in the rotated frame.
Rotation is clockwise for positive degrees (y axis pointing down).

Matrices are 6-tuples ``(a, b, c, d, e, f)`` mapping ``(x, y)`` to
``(a*x + b*y + c, d*x + e*y + f)``, the same layout Pillow's AFFINE
transform takes.  Pixel centers sit at half-integer coordinates.

Drawing goes through the ``Rasterizer`` interface; ``PillowRasterizer``
is the default backend.
"""

import io
import logging
import math
from abc import ABC, abstractmethod

from PIL import Image

from post_image_editor.config import JPEG_BACKGROUND, JPEG_SUBSAMPLING_MAP
from post_image_editor.errors import (
    EmptyCropError, EncodeFailedError, ImageLoadError, SourceUnavailableError,
)
from post_image_editor.models import (
    CompletedCrop, ImageResource, OutputOptions, RenderedImage, TransformParams,
)

logger = logging.getLogger(__name__)

Matrix = tuple[float, float, float, float, float, float]

IDENTITY: Matrix = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0)

# Trig results closer than this to 0 or ±1 are snapped, keeping quarter
# turns exact.
_SNAP_EPSILON = 1e-12


# =============================================================================
# Matrix helpers
# =============================================================================
def _snap(v: float) -> float:
    for target in (0.0, 1.0, -1.0):
        if abs(v - target) < _SNAP_EPSILON:
            return target
    return v


def canvas_matrix(width: float, height: float, params: TransformParams) -> Matrix:
    """Matrix mapping the drawn region's coordinates to output surface coordinates."""
    theta = math.radians(params.rotation % 360)
    cos_t = _snap(math.cos(theta))
    sin_t = _snap(math.sin(theta))
    sx = (-1.0 if params.flip_horizontal else 1.0) * params.scale
    sy = (-1.0 if params.flip_vertical else 1.0) * params.scale
    cx, cy = width / 2, height / 2

    a = cos_t * sx
    b = -sin_t * sy
    d = sin_t * sx
    e = cos_t * sy
    c = cx - a * cx - b * cy
    f = cy - d * cx - e * cy
    return a, b, c, d, e, f


def invert_affine(m: Matrix) -> Matrix:
    """Inverse of an affine matrix. Raises ValueError if it is singular."""
    a, b, c, d, e, f = m
    det = a * e - b * d
    if det == 0:
        raise ValueError("matrix is singular")
    ia = e / det
    ib = -b / det
    id_ = -d / det
    ie = a / det
    return ia, ib, -(ia * c + ib * f), id_, ie, -(id_ * c + ie * f)


def apply_affine(m: Matrix, x: float, y: float) -> tuple[float, float]:
    a, b, c, d, e, f = m
    return a * x + b * y + c, d * x + e * y + f


def _is_pixel_exact(m: Matrix) -> bool:
    """True when the matrix maps pixel centers onto pixel centers (quarter turns, flips, unit scale)."""
    a, b, c, d, e, f = m
    linear_ok = all(v in (0.0, 1.0, -1.0) for v in (a, b, d, e))
    return linear_ok and float(c).is_integer() and float(f).is_integer()


# =============================================================================
# Rasterizer interface
# =============================================================================
class Rasterizer(ABC):
    """Drawing backend used by the compositor."""

    @abstractmethod
    def load_image(self, resource: ImageResource):
        """Return a drawable bitmap for *resource*. Raise SourceUnavailableError if there is none."""

    @abstractmethod
    def create_surface(self, width: int, height: int):
        """Return a transparent surface of the given size."""

    @abstractmethod
    def draw_region_with_transform(self, surface, image, region: CompletedCrop, matrix: Matrix):
        """Draw *region* of *image* at (0, 0) sized to *region*, through *matrix*. Return the surface."""

    @abstractmethod
    def encode(self, surface, options: OutputOptions) -> bytes:
        """Encode the surface. Raise EncodeFailedError on failure."""


class PillowRasterizer(Rasterizer):
    """Software rasterizer built on Pillow."""

    def load_image(self, resource: ImageResource) -> Image.Image:
        bitmap = resource.bitmap
        if bitmap is None and resource.source:
            # Imported here: image_io pulls in requests and psd-tools.
            from post_image_editor.image_io import load_resource
            try:
                bitmap = load_resource(resource.source).bitmap
            except ImageLoadError as exc:
                raise SourceUnavailableError(str(exc)) from exc
        if bitmap is None:
            raise SourceUnavailableError(f"image '{resource.name}' has no pixel data")
        try:
            return bitmap if bitmap.mode == "RGBA" else bitmap.convert("RGBA")
        except (OSError, ValueError) as exc:
            raise SourceUnavailableError(f"could not decode '{resource.name}': {exc}") from exc

    def create_surface(self, width: int, height: int) -> Image.Image:
        return Image.new("RGBA", (width, height), (0, 0, 0, 0))

    def draw_region_with_transform(
        self, surface: Image.Image, image: Image.Image,
        region: CompletedCrop, matrix: Matrix,
    ) -> Image.Image:
        tile = image.crop(region.as_box())
        if tile.size != surface.size:
            tile = tile.resize(surface.size, Image.Resampling.LANCZOS)

        if matrix == IDENTITY:
            surface.alpha_composite(tile)
            return surface

        resample = Image.Resampling.NEAREST if _is_pixel_exact(matrix) else Image.Resampling.BICUBIC
        # Pillow maps output coordinates back to input, so it takes the inverse.
        drawn = tile.transform(
            surface.size,
            Image.Transform.AFFINE,
            invert_affine(matrix),
            resample=resample,
            fillcolor=(0, 0, 0, 0),
        )
        surface.alpha_composite(drawn)
        return surface

    def encode(self, surface: Image.Image, options: OutputOptions) -> bytes:
        buf = io.BytesIO()
        try:
            if options.format == "JPEG":
                flat = Image.new("RGBA", surface.size, JPEG_BACKGROUND + (255,))
                flat.alpha_composite(surface)
                flat.convert("RGB").save(
                    buf, "JPEG",
                    quality=options.jpeg_quality,
                    optimize=options.jpeg_optimize,
                    subsampling=JPEG_SUBSAMPLING_MAP[options.jpeg_subsampling],
                )
            elif options.format == "PNG":
                surface.save(buf, "PNG", compress_level=options.compress_level)
            else:
                raise ValueError(f"unsupported output format {options.format!r}")
        except (OSError, ValueError, KeyError) as exc:
            raise EncodeFailedError(f"could not encode {options.format}: {exc}") from exc
        return buf.getvalue()


# =============================================================================
# Compositor
# =============================================================================
class Compositor:
    """Renders an image, a natural-pixel crop and a transform into encoded bytes."""

    def __init__(self, rasterizer: Rasterizer | None = None, output: OutputOptions | None = None):
        self._rasterizer = rasterizer or PillowRasterizer()
        self._output = output or OutputOptions()

    @property
    def output(self) -> OutputOptions:
        return self._output

    def render(
        self, image: ImageResource | None,
        crop: CompletedCrop | None,
        transform: TransformParams,
    ) -> RenderedImage:
        if image is None:
            raise SourceUnavailableError("no source image")
        if crop is None or crop.is_empty:
            raise EmptyCropError(f"crop {crop} has no area")

        bitmap = self._rasterizer.load_image(image)
        surface = self._rasterizer.create_surface(crop.width, crop.height)
        matrix = canvas_matrix(crop.width, crop.height, transform)
        surface = self._rasterizer.draw_region_with_transform(surface, bitmap, crop, matrix)
        data = self._rasterizer.encode(surface, self._output)

        logger.debug(
            "Rendered %s crop %s rot=%s flip=(%s, %s) scale=%s → %d bytes",
            image.name, crop, transform.rotation, transform.flip_horizontal,
            transform.flip_vertical, transform.scale, len(data),
        )
        return RenderedImage(data=data, mime_type=self._output.mime_type, width=crop.width, height=crop.height)
