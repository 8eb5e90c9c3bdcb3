"""
Interactive crop-overlay widget and Qt image helpers.

This module contains everything that touches both Qt **and** image display:
``pil_to_qpixmap``, the background ``ImageLoaderThread`` and the
``ImageCropWidget`` editor.

The widget works in percent space relative to the displayed image box.
It only *proposes* crops: drags emit ``crop_changed`` with the proposed
rectangle and the owner answers with ``set_crop`` once the crop has been
clamped and snapped.  ``crop_completed`` fires once per gesture.
"""

from PIL import Image
from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QRectF, QPointF, pyqtSignal, QThread
from PyQt6.QtGui import (
    QPainter, QPainterPath, QPixmap, QColor, QPen, QBrush, QImage, QTransform,
    QKeyEvent, QMouseEvent, QPaintEvent, QResizeEvent,
)

from post_image_editor.config import HANDLE_SIZE, MIN_CROP_SIZE, NUDGE_SMALL, NUDGE_LARGE
from post_image_editor.errors import EditorError
from post_image_editor.image_io import load_resource
from post_image_editor.models import PercentCrop, TransformParams


# =============================================================================
# Qt ↔ PIL helpers
# =============================================================================

def pil_to_qpixmap(pil_img: Image.Image) -> QPixmap:
    """Convert a PIL Image to QPixmap."""
    img_rgba = pil_img.convert("RGBA")
    data = img_rgba.tobytes("raw", "RGBA")
    qimg = QImage(data, img_rgba.width, img_rgba.height, QImage.Format.Format_RGBA8888)
    return QPixmap.fromImage(qimg.copy())


# =============================================================================
# Background threads
# =============================================================================

class ImageLoaderThread(QThread):
    """Background thread resolving an image reference (path, URL) to an ImageResource."""
    finished = pyqtSignal(object)
    error = pyqtSignal(str)

    def __init__(self, source, parent=None):
        super().__init__(parent)
        self._source = source

    def run(self):
        try:
            self.finished.emit(load_resource(self._source))
        except EditorError as e:
            self.error.emit(str(e))


# =============================================================================
# Image Crop Widget: interactive crop overlay on image
# =============================================================================

class ImageCropWidget(QWidget):
    """Widget that displays an image with an interactive, resizable crop overlay."""

    crop_changed = pyqtSignal(object)    # PercentCrop proposal during a drag
    crop_completed = pyqtSignal(object)  # PercentCrop at the end of a gesture
    display_changed = pyqtSignal(float, float)

    # Corner handles as (fx, fy) fractions of the crop rectangle
    CORNERS = ((0, 0), (1, 0), (0, 1), (1, 1))

    MODE_NONE = 0
    MODE_MOVE = 1
    MODE_RESIZE = 2
    MODE_DRAW = 3

    _CORNER_CURSORS = {
        (0, 0): Qt.CursorShape.SizeFDiagCursor,
        (1, 1): Qt.CursorShape.SizeFDiagCursor,
        (1, 0): Qt.CursorShape.SizeBDiagCursor,
        (0, 1): Qt.CursorShape.SizeBDiagCursor,
    }
    _MODE_CURSORS = {
        MODE_NONE: Qt.CursorShape.ArrowCursor,
        MODE_MOVE: Qt.CursorShape.SizeAllCursor,
        MODE_DRAW: Qt.CursorShape.CrossCursor,
    }

    _NUDGE_KEYS = {
        Qt.Key.Key_Left: (-1, 0),
        Qt.Key.Key_Right: (1, 0),
        Qt.Key.Key_Up: (0, -1),
        Qt.Key.Key_Down: (0, 1),
    }

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(400, 300)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.setMouseTracking(True)

        self._pixmap: QPixmap | None = None
        self._crop: PercentCrop | None = None
        self._aspect: float | None = None
        self._min_size: tuple[float, float] = (MIN_CROP_SIZE, MIN_CROP_SIZE)
        self._transform = TransformParams()
        self._loading = False

        # Letterboxed image box inside the widget
        self._box = QRectF()

        # Drag state
        self._mode = self.MODE_NONE
        self._corner: tuple[int, int] | None = None
        self._press_pct = QPointF()
        self._crop_start: PercentCrop | None = None
        self._proposed: PercentCrop | None = None

    def set_loading(self, loading: bool):
        self._loading = loading
        self.update()

    def set_image(self, pixmap: QPixmap):
        self._loading = False
        self._pixmap = pixmap
        self._fit_image_box()
        self.update()

    def set_crop(
        self, crop: PercentCrop | None, aspect: float | None,
        min_size: tuple[float, float] | None = None,
    ):
        """
        Show *crop*; *aspect* locks corner resizes (None for free form).

        *min_size* is the smallest crop, in displayed pixels, a drag may
        propose.  It is kept until the next call that passes one.
        """
        self._crop = crop.copy() if crop else None
        self._aspect = aspect
        if min_size is not None:
            self._min_size = (float(min_size[0]), float(min_size[1]))
        self.update()

    def set_transform(self, params: TransformParams):
        """Preview rotation, flips and scale on the displayed image."""
        self._transform = params.copy()
        self.update()

    def has_image(self) -> bool:
        return self._pixmap is not None

    def display_size(self) -> tuple[float, float]:
        return self._box.width(), self._box.height()

    def clear(self):
        self._pixmap = None
        self._crop = None
        self._box = QRectF()
        self.update()

    # --- Coordinate mapping ---

    def _fit_image_box(self):
        """Scale the image to fit the widget, centered with letterbox bars."""
        if self._pixmap is None or self._pixmap.isNull():
            return
        pw, ph = self._pixmap.width(), self._pixmap.height()
        fit = min(self.width() / pw, self.height() / ph)
        w, h = pw * fit, ph * fit
        self._box = QRectF((self.width() - w) / 2, (self.height() - h) / 2, w, h)
        self.display_changed.emit(w, h)

    def _to_screen(self, px: float, py: float) -> QPointF:
        """Percent of the image box → widget coordinates."""
        b = self._box
        return QPointF(b.x() + b.width() * px / 100, b.y() + b.height() * py / 100)

    def _to_percent(self, pos: QPointF) -> QPointF:
        """Widget coordinates → percent of the image box (unclamped)."""
        b = self._box
        if b.isEmpty():
            return QPointF()
        return QPointF((pos.x() - b.x()) / b.width() * 100, (pos.y() - b.y()) / b.height() * 100)

    def _crop_screen_rect(self) -> QRectF:
        c = self._crop
        return QRectF(self._to_screen(c.x, c.y), self._to_screen(c.x + c.width, c.y + c.height))

    def _corner_point(self, rect: QRectF, corner: tuple[int, int]) -> QPointF:
        fx, fy = corner
        return QPointF(rect.left() + fx * rect.width(), rect.top() + fy * rect.height())

    def _classify(self, pos: QPointF) -> tuple[int, tuple[int, int] | None]:
        """What a press at *pos* would do: resize a corner, move, draw or nothing."""
        if self._crop is not None:
            rect = self._crop_screen_rect()
            for corner in self.CORNERS:
                p = self._corner_point(rect, corner)
                if abs(pos.x() - p.x()) <= HANDLE_SIZE and abs(pos.y() - p.y()) <= HANDLE_SIZE:
                    return self.MODE_RESIZE, corner
            if rect.contains(pos):
                return self.MODE_MOVE, None
        if self._box.contains(pos):
            return self.MODE_DRAW, None
        return self.MODE_NONE, None

    # --- Painting ---

    def _image_transform(self) -> QTransform:
        """Preview transform about the displayed image center."""
        t = self._transform
        center = self._box.center()
        qt = QTransform()
        qt.translate(center.x(), center.y())
        qt.rotate(t.rotation)
        qt.scale(
            (-1 if t.flip_horizontal else 1) * t.scale,
            (-1 if t.flip_vertical else 1) * t.scale,
        )
        qt.translate(-center.x(), -center.y())
        return qt

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor(30, 30, 30))
        if self._pixmap is None:
            painter.setPen(QColor(128, 128, 128))
            text = "Loading image…" if self._loading else "No image loaded"
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, text)
        else:
            self._paint_image(painter)
            if self._crop is not None:
                self._paint_overlay(painter, self._crop_screen_rect())
        painter.end()

    def _paint_image(self, painter: QPainter):
        painter.save()
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.setClipRect(self._box)
        painter.setTransform(self._image_transform())
        painter.drawPixmap(self._box.toRect(), self._pixmap)
        painter.restore()

    def _paint_overlay(self, painter: QPainter, rect: QRectF):
        # Shade the image outside the crop
        shade = QPainterPath()
        shade.setFillRule(Qt.FillRule.OddEvenFill)
        shade.addRect(self._box)
        shade.addRect(rect)
        painter.fillPath(shade, QColor(0, 0, 0, 140))

        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.setPen(QPen(QColor(255, 255, 255), 2))
        painter.drawRect(rect)

        painter.setPen(QPen(QColor(255, 255, 255, 80), 1, Qt.PenStyle.DashLine))
        for frac in (1 / 3, 2 / 3):
            gx = rect.left() + rect.width() * frac
            gy = rect.top() + rect.height() * frac
            painter.drawLine(QPointF(gx, rect.top()), QPointF(gx, rect.bottom()))
            painter.drawLine(QPointF(rect.left(), gy), QPointF(rect.right(), gy))

        painter.setPen(QPen(QColor(0, 0, 0), 1))
        painter.setBrush(QBrush(QColor(255, 255, 255)))
        for corner in self.CORNERS:
            p = self._corner_point(rect, corner)
            painter.drawRect(QRectF(p.x() - HANDLE_SIZE, p.y() - HANDLE_SIZE, HANDLE_SIZE * 2, HANDLE_SIZE * 2))

    def resizeEvent(self, event: QResizeEvent):
        self._fit_image_box()
        super().resizeEvent(event)

    # --- Mouse interaction ---

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton or self._pixmap is None:
            return
        pos = event.position()
        self._mode, self._corner = self._classify(pos)
        self._press_pct = self._to_percent(pos)
        self._proposed = None
        if self._mode == self.MODE_DRAW:
            self._crop_start = PercentCrop(self._press_pct.x(), self._press_pct.y(), 0.0, 0.0)
        elif self._mode != self.MODE_NONE:
            self._crop_start = self._crop.copy()

    def mouseMoveEvent(self, event: QMouseEvent):
        if self._pixmap is None:
            return
        pos = event.position()

        if self._mode == self.MODE_NONE:
            mode, corner = self._classify(pos)
            shape = self._CORNER_CURSORS[corner] if corner else self._MODE_CURSORS[mode]
            self.setCursor(shape)
            return

        if self._mode == self.MODE_MOVE:
            proposed = self._moved_crop(self._to_percent(pos))
        else:
            proposed = self._dragged_corner_crop(pos)
        if proposed is None:
            return
        self._proposed = proposed
        self.crop_changed.emit(proposed)

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton:
            return
        proposed = self._proposed if self._mode != self.MODE_NONE else None
        self._mode = self.MODE_NONE
        self._corner = None
        self._proposed = None
        if proposed is not None:
            final = self._crop if self._crop is not None else proposed
            self.crop_completed.emit(final.copy())

    def _moved_crop(self, pct: QPointF) -> PercentCrop:
        cs = self._crop_start
        nx = cs.x + pct.x() - self._press_pct.x()
        ny = cs.y + pct.y() - self._press_pct.y()
        return PercentCrop(
            min(max(nx, 0.0), 100 - cs.width),
            min(max(ny, 0.0), 100 - cs.height),
            cs.width, cs.height,
        )

    def _dragged_corner_crop(self, pos: QPointF) -> PercentCrop | None:
        """
        Crop spanned between the fixed opposite corner and the mouse.

        Sizes are computed in displayed pixels, so a locked aspect is a pixel
        ratio, then clamped to the space left between the anchor and the
        image edge.  Returns None when the image has no size yet.
        """
        box_w, box_h = self._box.width(), self._box.height()
        if box_w <= 0 or box_h <= 0:
            return None
        pct = self._to_percent(pos)
        mx = min(max(pct.x(), 0.0), 100.0) * box_w / 100
        my = min(max(pct.y(), 0.0), 100.0) * box_h / 100

        cs = self._crop_start
        if self._mode == self.MODE_DRAW:
            # Drawing grows from the press point toward the mouse.
            ax, ay = cs.x * box_w / 100, cs.y * box_h / 100
            corner = (int(mx >= ax), int(my >= ay))
        else:
            corner = self._corner
            ax = (cs.x + (1 - corner[0]) * cs.width) * box_w / 100
            ay = (cs.y + (1 - corner[1]) * cs.height) * box_h / 100

        sx = 1 if corner[0] else -1
        sy = 1 if corner[1] else -1
        room_w = box_w - ax if sx > 0 else ax
        room_h = box_h - ay if sy > 0 else ay

        min_w, min_h = self._min_size
        w = max((mx - ax) * sx, min_w)
        h = max((my - ay) * sy, min_h)
        ar = self._aspect
        if ar is not None:
            # Follow the limiting side, then grow back to both minimums
            w = h * ar if w / h > ar else w
            w = max(w, min_w, min_h * ar)
            h = w / ar
        if w > room_w:
            w = room_w
            h = w / ar if ar is not None else h
        if h > room_h:
            h = room_h
            w = h * ar if ar is not None else w

        x = ax if sx > 0 else ax - w
        y = ay if sy > 0 else ay - h
        return PercentCrop(x / box_w * 100, y / box_h * 100, w / box_w * 100, h / box_h * 100)

    # --- Keyboard nudge ---

    def keyPressEvent(self, event: QKeyEvent):
        step = self._NUDGE_KEYS.get(event.key())
        if step is None or self._crop is None or self._box.isEmpty():
            super().keyPressEvent(event)
            return
        shifted = event.modifiers() & Qt.KeyboardModifier.ShiftModifier
        amount = NUDGE_LARGE if shifted else NUDGE_SMALL
        c = self._crop.copy()
        c.x = min(max(c.x + step[0] * amount / self._box.width() * 100, 0.0), 100 - c.width)
        c.y = min(max(c.y + step[1] * amount / self._box.height() * 100, 0.0), 100 - c.height)
        self.crop_changed.emit(c)
        self.crop_completed.emit(self._crop.copy())
