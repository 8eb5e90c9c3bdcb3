"""
Exception hierarchy for the image editor.

Geometry errors are raised by the pure conversion functions and recovered
inside ``TransformState``.  Compositor errors reach the caller of
save/download.  Every class takes a single message argument so instances
survive pickling across worker processes.
"""


class EditorError(Exception):
    """Base class for all editor errors."""


# =============================================================================
# Geometry
# =============================================================================
class GeometryError(EditorError):
    """A crop conversion could not be computed."""


class NotReadyError(GeometryError):
    """The image has no displayed size yet (not loaded or laid out)."""


class InvalidAspectError(GeometryError):
    """An aspect ratio was zero, negative or not a finite number."""


# =============================================================================
# Compositor
# =============================================================================
class CompositorError(EditorError):
    """Rendering the edited image failed."""


class SourceUnavailableError(CompositorError):
    """The source image is missing or could not be decoded."""


class EmptyCropError(CompositorError):
    """There is no crop, or the crop has zero area."""


class EncodeFailedError(CompositorError):
    """The rendered surface could not be encoded."""


# =============================================================================
# Input / session
# =============================================================================
class ImageLoadError(EditorError):
    """An image reference could not be resolved to pixel data."""


class SessionClosedError(EditorError):
    """The editor session was cancelled or already produced its result."""
