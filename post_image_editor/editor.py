"""
Editor session: the interaction contract between a host UI and the engine.

``EditorSession`` is Qt-free.  The host forwards gestures to the ``on_*``
methods; the session keeps the ``TransformState`` consistent and renders
on save.

Drag updates go through ``on_crop_change``, which does geometry only.
The natural-pixel crop used for export is recomputed solely in
``on_crop_complete``, fired once when a gesture ends.  Saving is refused
with ``EmptyCropError`` until a crop has been completed.

A successful save ends the session.  A failed save leaves it untouched so
the user can retry.  ``on_cancel`` ends it too, and discards a render
still in flight.
"""

import logging
import threading
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Callable

from post_image_editor import geometry
from post_image_editor.compositor import Compositor
from post_image_editor.config import ROTATE_STEP
from post_image_editor.errors import EmptyCropError, GeometryError, SessionClosedError
from post_image_editor.image_io import unique_path
from post_image_editor.models import (
    CompletedCrop, EditorConfig, EditResult, ImageResource, PercentCrop,
)
from post_image_editor.state import TransformState
from post_image_editor.worker import RenderJob, render_job

logger = logging.getLogger(__name__)


class EditorSession:
    """One editing session over one image."""

    def __init__(
        self,
        image: ImageResource,
        config: EditorConfig | None = None,
        on_save: Callable[[EditResult], None] | None = None,
        compositor: Compositor | None = None,
    ):
        self._image = image
        self._config = config or EditorConfig()
        self._state = TransformState(self._config)
        self._compositor = compositor or Compositor(output=self._config.output)
        self._on_save = on_save
        self._completed: CompletedCrop | None = None
        self._pending: Future | None = None
        self._closed = False
        self._cancelled = False
        # Guards the close transition; renders finish on an executor thread.
        self._close_lock = threading.Lock()

    # --- Properties ---

    @property
    def image(self) -> ImageResource:
        return self._image

    @property
    def config(self) -> EditorConfig:
        return self._config

    @property
    def state(self) -> TransformState:
        return self._state

    @property
    def completed_crop(self) -> CompletedCrop | None:
        return self._completed

    @property
    def can_save(self) -> bool:
        return not self._closed and self._completed is not None and not self._completed.is_empty

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def was_cancelled(self) -> bool:
        """True once ``on_cancel`` closed the session, as opposed to a save."""
        return self._cancelled

    def _ensure_open(self):
        if self._closed:
            raise SessionClosedError(f"editor session for '{self._image.name}' is closed")

    # --- Layout ---

    def on_image_displayed(self, width: float, height: float):
        """The host laid the image out at *width* × *height* on-screen pixels."""
        self._ensure_open()
        self._state.set_display_size(width, height)

    # --- Crop gestures ---

    def on_aspect_select(self, ratio: float | None) -> bool:
        """Pick an aspect preset. The recentered crop counts as a completed gesture."""
        self._ensure_open()
        if not self._state.set_aspect(ratio):
            return False
        self._completed = None
        if self._state.crop is not None:
            self.on_crop_complete()
        return True

    def on_crop_change(self, rect: PercentCrop) -> PercentCrop | None:
        """
        Continuous drag update. Pure geometry, never raises.

        Returns the crop actually applied after clamping and aspect snapping.
        """
        if self._closed:
            logger.debug("Ignored crop change on closed session")
            return None
        if not self._state.is_dragging:
            self._state.begin_drag()
        self._state.set_crop(rect)
        return self._state.crop

    def on_crop_complete(self, rect: PercentCrop | None = None) -> CompletedCrop | None:
        """End of a gesture: apply *rect* (if given) and recompute the natural-pixel crop."""
        self._ensure_open()
        if rect is not None:
            self._state.set_crop(rect)
        self._state.end_drag()
        return self._recompute_completed()

    def _recompute_completed(self) -> CompletedCrop | None:
        pixel = self._state.pixel_crop()
        if pixel is None:
            return self._completed
        display_w, display_h = self._state.display_size
        try:
            self._completed = geometry.to_natural_crop(
                pixel, display_w, display_h,
                self._image.natural_width, self._image.natural_height,
            )
        except GeometryError as exc:
            logger.warning("Could not map crop to natural pixels: %s", exc)
            return self._completed
        logger.debug("Completed crop %s", self._completed)
        return self._completed

    # --- Transform gestures ---

    def on_rotate(self, delta: float = ROTATE_STEP):
        self._ensure_open()
        self._state.rotate(delta)

    def on_flip(self, axis: str):
        """Flip along ``"h"`` (horizontal) or ``"v"`` (vertical)."""
        self._ensure_open()
        if axis == "h":
            self._state.toggle_flip_horizontal()
        elif axis == "v":
            self._state.toggle_flip_vertical()
        else:
            raise ValueError(f"flip axis must be 'h' or 'v', got {axis!r}")

    def on_scale(self, value: float) -> float:
        self._ensure_open()
        return self._state.set_scale(value)

    def on_reset(self):
        """Identity transform, no crop; saving is disabled until a new crop completes."""
        self._ensure_open()
        self._state.reset()
        self._completed = None

    # --- Output ---

    def _render(self) -> EditResult:
        if self._completed is None:
            raise EmptyCropError("no completed crop to save")
        rendered = self._compositor.render(self._image, self._completed, self._state.transform)
        return EditResult(data=rendered.data, mime_type=rendered.mime_type, crop=self._completed)

    def on_save(self) -> EditResult:
        """Render, hand the result to the ``on_save`` callback and end the session."""
        self._ensure_open()
        result = self._render()
        self._deliver(result)
        return result

    def on_download(self, directory: Path) -> Path:
        """Render and write ``{name}-edited.{ext}`` into *directory*. The session stays open."""
        self._ensure_open()
        result = self._render()
        directory.mkdir(parents=True, exist_ok=True)
        out_path = unique_path(directory / result.suggested_filename(self._image.name))
        out_path.write_bytes(result.data)
        logger.info("Downloaded %s (%d bytes)", out_path, len(result.data))
        return out_path

    def submit_save(self, executor: Executor) -> Future:
        """
        Render on *executor* and deliver the result when done.

        The job is picklable, so a ``ProcessPoolExecutor`` works; it always
        renders with the Pillow backend.  If the session is cancelled
        first, the result is discarded and the callback is not invoked.
        """
        self._ensure_open()
        if self._completed is None:
            raise EmptyCropError("no completed crop to save")
        if self._pending is not None and not self._pending.done():
            return self._pending
        job = RenderJob(
            image=self._image,
            crop=self._completed,
            transform=self._state.transform,
            output=self._config.output,
        )
        future = executor.submit(render_job, job)
        self._pending = future
        future.add_done_callback(self._on_render_done)
        return future

    def _on_render_done(self, future: Future):
        if future.cancelled():
            return
        if future.exception() is not None:
            logger.warning("Render failed for '%s': %s", self._image.name, future.exception())
            return
        self._deliver(future.result())

    def _claim_close(self) -> bool:
        """Close the session; False if a save or cancel already did."""
        with self._close_lock:
            if self._closed:
                return False
            self._closed = True
            return True

    def _deliver(self, result: EditResult):
        if not self._claim_close():
            logger.info("Discarded render result for closed session '%s'", self._image.name)
            return
        self._pending = None
        logger.info(
            "Saved '%s': %d bytes %s, crop %s",
            self._image.name, len(result.data), result.mime_type, result.crop,
        )
        if self._on_save is not None:
            self._on_save(result)

    def on_cancel(self):
        """Close the editor, dropping any render in flight."""
        if not self._claim_close():
            return
        self._cancelled = True
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        logger.debug("Cancelled editor session for '%s'", self._image.name)

    # --- Display helpers ---

    def crop_summary(self) -> str:
        """``"720 × 720px · Aspect: 1.00"``, or empty before a crop completes."""
        if self._completed is None:
            return ""
        aspect = self._state.aspect
        label = f"{aspect:.2f}" if aspect is not None else "Free"
        return f"{self._completed.width} × {self._completed.height}px · Aspect: {label}"
