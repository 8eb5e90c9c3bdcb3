"""Tests for the crop overlay's drag proposals."""

import os

import pytest

pytest.importorskip("PyQt6.QtWidgets", reason="Qt widgets not available", exc_type=ImportError)

from PyQt6.QtCore import QEvent, QPointF, Qt
from PyQt6.QtGui import QMouseEvent, QPixmap
from PyQt6.QtWidgets import QApplication

from post_image_editor.crop_widget import ImageCropWidget
from post_image_editor.models import PercentCrop


@pytest.fixture(scope="module")
def qapp() -> QApplication:
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture
def widget(qapp):
    w = ImageCropWidget()
    w.resize(500, 400)
    pixmap = QPixmap(500, 400)
    pixmap.fill(Qt.GlobalColor.gray)
    w.set_image(pixmap)
    return w


def _mouse(kind, x, y, buttons=Qt.MouseButton.LeftButton):
    pos = QPointF(x, y)
    return QMouseEvent(
        kind, pos, pos, Qt.MouseButton.LeftButton, buttons, Qt.KeyboardModifier.NoModifier,
    )


def _tiny_draw(widget) -> list:
    """Draw a 5×2 px crop below the current one; return every signal payload."""
    proposals, completed = [], []
    widget.crop_changed.connect(proposals.append)
    widget.crop_completed.connect(completed.append)
    widget.mousePressEvent(_mouse(QEvent.Type.MouseButtonPress, 100, 300))
    widget.mouseMoveEvent(_mouse(QEvent.Type.MouseMove, 105, 302))
    widget.mouseReleaseEvent(_mouse(QEvent.Type.MouseButtonRelease, 105, 302, Qt.MouseButton.NoButton))
    return proposals, completed


def _pixels(crop: PercentCrop) -> tuple[float, float]:
    return crop.width * 500 / 100, crop.height * 400 / 100


def test_display_box_fills_widget(widget):
    assert widget.display_size() == (500.0, 400.0)


def test_default_minimum_size(widget):
    widget.set_crop(PercentCrop(10, 10, 50, 50), None)
    proposals, completed = _tiny_draw(widget)
    assert _pixels(proposals[-1]) == pytest.approx((50.0, 50.0))
    assert len(completed) == 1


def test_configured_minimum_size(widget):
    widget.set_crop(PercentCrop(10, 10, 50, 50), None, (100, 80))
    proposals, _ = _tiny_draw(widget)
    assert _pixels(proposals[-1]) == pytest.approx((100.0, 80.0))


def test_configured_minimum_with_aspect(widget):
    widget.set_crop(PercentCrop(10, 10, 50, 50), 2.0, (100, 80))
    proposals, _ = _tiny_draw(widget)
    assert _pixels(proposals[-1]) == pytest.approx((160.0, 80.0))


def test_minimum_is_kept_across_updates(widget):
    widget.set_crop(PercentCrop(10, 10, 50, 50), None, (100, 80))
    widget.set_crop(PercentCrop(10, 10, 50, 50), None)
    proposals, _ = _tiny_draw(widget)
    assert _pixels(proposals[-1]) == pytest.approx((100.0, 80.0))


def test_release_without_crop_reports_proposal(widget):
    proposals, completed = _tiny_draw(widget)
    assert completed == [proposals[-1]]
