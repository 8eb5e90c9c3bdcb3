"""
Main editor window.

Hosts one ``EditorSession`` at a time: loads the image in the background,
forwards crop gestures and toolbar actions to the session, and renders
the save through a worker process.
"""

import logging
import time
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Callable

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel,
    QFileDialog, QSplitter, QGroupBox, QMessageBox, QProgressDialog,
    QStatusBar, QToolBar, QSlider, QApplication, QInputDialog,
)
from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtGui import QAction, QKeySequence, QShortcut

from post_image_editor.config import IMAGE_EXTENSIONS, ROTATE_STEP, SCALE_STEP
from post_image_editor.crop_widget import ImageCropWidget, ImageLoaderThread, pil_to_qpixmap
from post_image_editor.editor import EditorSession
from post_image_editor.errors import CompositorError, EmptyCropError
from post_image_editor.models import EditorConfig, EditResult, ImageResource, PercentCrop
from post_image_editor.presets import aspect_key

logger = logging.getLogger(__name__)


class EditorWindow(QMainWindow):
    # Emitted from the executor's callback thread; Qt queues it to the GUI thread.
    edit_saved = pyqtSignal(object)

    def __init__(
        self,
        config: EditorConfig | None = None,
        on_save: Callable[[EditResult], None] | None = None,
    ):
        super().__init__()
        self.setWindowTitle("Post Image Editor")
        self.setMinimumSize(900, 600)

        preferred_w, preferred_h = 1280, 800
        screen = QApplication.primaryScreen()
        if screen is not None:
            avail = screen.availableGeometry()
            preferred_w = min(preferred_w, int(avail.width() * 0.8))
            preferred_h = min(preferred_h, int(avail.height() * 0.8))
        self.resize(preferred_w, preferred_h)

        self._config = config or EditorConfig()
        self._on_save = on_save
        self._session: EditorSession | None = None
        self._loader: ImageLoaderThread | None = None
        self._executor: ProcessPoolExecutor | None = None
        self._current_preset_idx = 0
        self._needs_initial_complete = False
        self._last_directory = Path.home()

        self.edit_saved.connect(self._on_edit_saved)

        self._build_ui()
        self._update_button_states()

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_ui(self):
        self._build_toolbar()

        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QHBoxLayout(central)
        main_layout.setContentsMargins(4, 4, 4, 4)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        main_layout.addWidget(splitter)

        self._crop_widget = ImageCropWidget()
        self._crop_widget.crop_changed.connect(self._on_crop_changed)
        self._crop_widget.crop_completed.connect(self._on_crop_completed)
        self._crop_widget.display_changed.connect(self._on_display_changed)
        splitter.addWidget(self._crop_widget)

        right_panel = QWidget()
        right_panel.setFixedWidth(240)
        right_layout = QVBoxLayout(right_panel)
        right_layout.setContentsMargins(4, 0, 0, 0)
        right_layout.addWidget(self._build_preset_group())

        self._crop_info_label = QLabel("Crop: —")
        self._crop_info_label.setWordWrap(True)
        right_layout.addWidget(self._crop_info_label)

        right_layout.addWidget(self._build_transform_group())
        right_layout.addWidget(self._build_shortcuts_group())
        right_layout.addStretch()
        splitter.addWidget(right_panel)
        splitter.setSizes([1000, 240])

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        self._status.showMessage("Open an image to begin.")

        QShortcut(QKeySequence(Qt.Key.Key_R), self, lambda: self._rotate(ROTATE_STEP))
        QShortcut(QKeySequence(Qt.KeyboardModifier.ShiftModifier | Qt.Key.Key_R), self, lambda: self._rotate(-ROTATE_STEP))
        QShortcut(QKeySequence(Qt.Key.Key_H), self, lambda: self._flip("h"))
        QShortcut(QKeySequence(Qt.Key.Key_V), self, lambda: self._flip("v"))
        QShortcut(QKeySequence(Qt.Key.Key_Tab), self, self._next_preset)
        QShortcut(QKeySequence(Qt.KeyboardModifier.ShiftModifier | Qt.Key.Key_Tab), self, self._prev_preset)
        QShortcut(QKeySequence(Qt.Key.Key_Escape), self, self._cancel)

    def _build_toolbar(self):
        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        act_open = QAction("📂 Open Image", self)
        act_open.setShortcut(QKeySequence.StandardKey.Open)
        act_open.triggered.connect(self._select_image)
        toolbar.addAction(act_open)

        act_open_url = QAction("🌐 Open URL", self)
        act_open_url.triggered.connect(self._select_url)
        toolbar.addAction(act_open_url)

        toolbar.addSeparator()

        act_download = QAction("⬇ Download", self)
        act_download.setShortcut(QKeySequence("Ctrl+D"))
        act_download.triggered.connect(self._download)
        toolbar.addAction(act_download)
        self._act_download = act_download

        act_save = QAction("✔ Save", self)
        act_save.setShortcut(QKeySequence.StandardKey.Save)
        act_save.triggered.connect(self._save)
        toolbar.addAction(act_save)
        self._act_save = act_save

        act_cancel = QAction("✖ Cancel", self)
        act_cancel.triggered.connect(self._cancel)
        toolbar.addAction(act_cancel)
        self._act_cancel = act_cancel

    def _build_preset_group(self) -> QGroupBox:
        preset_group = QGroupBox("Aspect Ratio")
        layout = QVBoxLayout(preset_group)
        self._preset_buttons: list[QPushButton] = []
        for i, preset in enumerate(self._config.aspect_presets):
            btn = QPushButton(preset.name)
            btn.setCheckable(True)
            if preset.ratio is not None:
                btn.setToolTip(f"{preset.ratio:.3f} : 1")
            btn.clicked.connect(lambda checked, idx=i: self._on_preset_selected(idx))
            layout.addWidget(btn)
            self._preset_buttons.append(btn)
        if self._preset_buttons:
            self._preset_buttons[0].setChecked(True)
        return preset_group

    def _build_transform_group(self) -> QGroupBox:
        group = QGroupBox("Transform")
        layout = QVBoxLayout(group)

        rotate_row = QHBoxLayout()
        btn_rot_left = QPushButton("⟲ 90°")
        btn_rot_left.clicked.connect(lambda: self._rotate(-ROTATE_STEP))
        rotate_row.addWidget(btn_rot_left)
        btn_rot_right = QPushButton("⟳ 90°")
        btn_rot_right.clicked.connect(lambda: self._rotate(ROTATE_STEP))
        rotate_row.addWidget(btn_rot_right)
        layout.addLayout(rotate_row)

        flip_row = QHBoxLayout()
        btn_flip_h = QPushButton("⇋ Flip H")
        btn_flip_h.clicked.connect(lambda: self._flip("h"))
        flip_row.addWidget(btn_flip_h)
        btn_flip_v = QPushButton("⇵ Flip V")
        btn_flip_v.clicked.connect(lambda: self._flip("v"))
        flip_row.addWidget(btn_flip_v)
        layout.addLayout(flip_row)

        # Scale slider works in SCALE_STEP increments
        scale_row = QHBoxLayout()
        scale_row.addWidget(QLabel("Scale:"))
        lo, hi = self._config.scale_range
        self._scale_slider = QSlider(Qt.Orientation.Horizontal)
        self._scale_slider.setRange(round(lo / SCALE_STEP), round(hi / SCALE_STEP))
        self._scale_slider.setValue(round(1.0 / SCALE_STEP))
        self._scale_slider.valueChanged.connect(self._on_scale_changed)
        scale_row.addWidget(self._scale_slider, stretch=1)
        self._scale_label = QLabel("1.0×")
        self._scale_label.setFixedWidth(36)
        scale_row.addWidget(self._scale_label)
        layout.addLayout(scale_row)

        btn_reset = QPushButton("↺ Reset")
        btn_reset.setToolTip("Clear rotation, flips, scale and crop")
        btn_reset.clicked.connect(self._reset)
        layout.addWidget(btn_reset)

        self._transform_buttons = [btn_rot_left, btn_rot_right, btn_flip_h, btn_flip_v, btn_reset]
        return group

    def _build_shortcuts_group(self) -> QGroupBox:
        help_group = QGroupBox("Shortcuts")
        help_layout = QVBoxLayout(help_group)
        help_label = QLabel(
            "Drag corners: resize crop\n"
            "Drag body: move crop\n"
            "Drag outside: draw new crop\n"
            "Arrow keys: nudge crop (1px)\n"
            "Shift+Arrow: nudge (10px)\n"
            "\n"
            "R / Shift+R: rotate right / left\n"
            "H / V: flip horizontal / vertical\n"
            "Tab / Shift+Tab: next / prev ratio\n"
            "Ctrl+S: save  ·  Ctrl+D: download\n"
            "Esc: cancel"
        )
        help_label.setStyleSheet("color: #888; font-size: 8pt;")
        help_layout.addWidget(help_label)
        return help_group

    # =========================================================================
    # Image loading
    # =========================================================================

    def _select_image(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        path, _ = QFileDialog.getOpenFileName(
            self, "Open Image", str(self._last_directory), f"Images ({patterns})",
        )
        if not path:
            return
        self._last_directory = Path(path).parent
        self.load_source(path)

    def _select_url(self):
        url, ok = QInputDialog.getText(self, "Open URL", "Image URL:")
        if ok and url.strip():
            self.load_source(url.strip())

    def load_source(self, source):
        """Load *source* (path, URL or ``ImageResource``) and start a new session."""
        if isinstance(source, ImageResource):
            self._start_session(source)
            return

        self._crop_widget.clear()
        self._crop_widget.set_loading(True)
        self._status.showMessage(f"Loading {source}…")

        # Cancel any previous loader
        if self._loader is not None:
            try:
                self._loader.finished.disconnect()
                self._loader.error.disconnect()
            except (TypeError, RuntimeError):
                pass  # Already disconnected or destroyed
            if self._loader.isRunning():
                self._loader.quit()
                self._loader.wait(500)

        self._loader = ImageLoaderThread(source, self)
        self._loader.finished.connect(self._start_session)
        self._loader.error.connect(self._on_image_load_error)
        self._loader.start()

    def _on_image_load_error(self, error: str):
        self._crop_widget.set_loading(False)
        self._status.showMessage(f"Failed to load image: {error}")
        QMessageBox.warning(self, "Load Failed", f"Could not load image:\n{error}")

    def _start_session(self, resource: ImageResource):
        if self._session is not None:
            self._session.on_cancel()

        self._session = EditorSession(resource, self._config, on_save=self.edit_saved.emit)
        self._session.on_aspect_select(self._current_ratio())
        self._needs_initial_complete = True

        self._scale_slider.blockSignals(True)
        self._scale_slider.setValue(round(1.0 / SCALE_STEP))
        self._scale_slider.blockSignals(False)
        self._scale_label.setText("1.0×")

        self._crop_widget.set_transform(self._session.state.transform)
        self._crop_widget.set_image(pil_to_qpixmap(resource.bitmap))
        self.setWindowTitle(f"Post Image Editor — {resource.name}")
        self._status.showMessage(f"Loaded {resource.name} ({resource.natural_width}×{resource.natural_height})")
        self._sync_view()

    def _on_display_changed(self, width: float, height: float):
        if not self._session_open():
            return
        self._session.on_image_displayed(width, height)
        # The default crop counts as completed once the image is first laid out.
        if self._needs_initial_complete and self._session.state.crop is not None:
            self._needs_initial_complete = False
            self._session.on_crop_complete()
        self._sync_view()

    # =========================================================================
    # Crop gestures
    # =========================================================================

    def _on_crop_changed(self, rect: PercentCrop):
        if not self._session_open():
            return
        self._session.on_crop_change(rect)
        self._sync_view()

    def _on_crop_completed(self, rect: PercentCrop):
        if not self._session_open():
            return
        self._session.on_crop_complete(rect)
        self._sync_view()

    def _current_ratio(self) -> float | None:
        presets = self._config.aspect_presets
        if not presets:
            return None
        return presets[self._current_preset_idx].ratio

    def _on_preset_selected(self, idx: int):
        for i, btn in enumerate(self._preset_buttons):
            btn.setChecked(i == idx)
        self._current_preset_idx = idx
        if not self._session_open():
            return
        if not self._session.on_aspect_select(self._current_ratio()):
            self._status.showMessage("Invalid aspect ratio")
        self._sync_view()

    def _next_preset(self):
        if self._preset_buttons:
            self._on_preset_selected((self._current_preset_idx + 1) % len(self._preset_buttons))

    def _prev_preset(self):
        if self._preset_buttons:
            self._on_preset_selected((self._current_preset_idx - 1) % len(self._preset_buttons))

    # =========================================================================
    # Transform
    # =========================================================================

    def _rotate(self, delta: float):
        if self._session_open():
            self._session.on_rotate(delta)
            self._sync_view()

    def _flip(self, axis: str):
        if self._session_open():
            self._session.on_flip(axis)
            self._sync_view()

    def _on_scale_changed(self, value: int):
        if not self._session_open():
            return
        applied = self._session.on_scale(value * SCALE_STEP)
        self._scale_label.setText(f"{applied:.1f}×")
        self._sync_view()

    def _reset(self):
        if not self._session_open():
            return
        self._session.on_reset()
        self._scale_slider.blockSignals(True)
        self._scale_slider.setValue(round(1.0 / SCALE_STEP))
        self._scale_slider.blockSignals(False)
        self._scale_label.setText("1.0×")
        # Re-derive a centered crop; saving stays disabled until it is adjusted.
        self._session.on_image_displayed(*self._crop_widget.display_size())
        self._sync_view()
        self._status.showMessage("Reset. Adjust the crop to enable saving.")

    # =========================================================================
    # View sync
    # =========================================================================

    def _session_open(self) -> bool:
        return self._session is not None and not self._session.is_closed

    def _sync_view(self):
        if self._session is None:
            return
        state = self._session.state
        self._crop_widget.set_crop(state.crop, state.aspect, self._config.min_crop_pixels)
        self._crop_widget.set_transform(state.transform)
        self._update_crop_info()
        self._update_button_states()

    def _update_crop_info(self):
        crop = self._session.completed_crop if self._session else None
        if crop is None or crop.is_empty:
            self._crop_info_label.setText("Crop: —")
            return
        self._crop_info_label.setText(
            f"{self._session.crop_summary()}\n"
            f"Ratio: {aspect_key(crop.width, crop.height)}\n"
            f"Position: ({crop.x}, {crop.y})"
        )

    def _update_button_states(self):
        is_open = self._session_open()
        can_save = is_open and self._session.can_save
        self._act_save.setEnabled(can_save)
        self._act_download.setEnabled(can_save)
        self._act_cancel.setEnabled(is_open)
        for btn in self._transform_buttons + self._preset_buttons:
            btn.setEnabled(is_open)
        self._scale_slider.setEnabled(is_open)

    # =========================================================================
    # Output
    # =========================================================================

    def _download(self):
        if not self._session_open():
            return
        folder = QFileDialog.getExistingDirectory(self, "Select Download Folder", str(self._last_directory))
        if not folder:
            return
        self._last_directory = Path(folder)
        try:
            out_path = self._session.on_download(Path(folder))
        except (CompositorError, OSError) as e:
            logger.error("Download failed: %s", e)
            QMessageBox.critical(self, "Download Failed", f"Could not export image:\n{e}")
            return
        self._status.showMessage(f"Downloaded: {out_path}")

    def _save(self):
        if not self._session_open():
            return
        if self._executor is None:
            self._executor = ProcessPoolExecutor(max_workers=1)

        try:
            future = self._session.submit_save(self._executor)
        except EmptyCropError as e:
            QMessageBox.warning(self, "Nothing to Save", str(e))
            return

        progress = QProgressDialog(f"Rendering: {self._session.image.name}…", "Cancel", 0, 0, self)
        progress.setWindowModality(Qt.WindowModality.WindowModal)
        progress.setMinimumDuration(0)
        progress.setValue(0)
        QApplication.processEvents()

        while not future.done():
            if progress.wasCanceled():
                self._cancel()
                break
            QApplication.processEvents()
            time.sleep(0.05)

        progress.close()

        if future.done() and not future.cancelled() and future.exception() is not None:
            # The session keeps its state; the user can retry.
            e = future.exception()
            logger.error("Save failed: %s", e)
            QMessageBox.critical(self, "Save Failed", f"Could not render image:\n{e}")

    def _on_edit_saved(self, result: EditResult):
        """Deliver a finished save on the GUI thread."""
        self._update_button_states()
        session = self._session
        if session is None or not session.is_closed or session.was_cancelled:
            # Queued before a cancel or a newly opened image
            logger.info("Dropped a save result for a session that is no longer current")
            return
        if self._on_save is not None:
            self._on_save(result)
            self._status.showMessage(f"Saved ({len(result.data)} bytes)")
            return

        name = session.image.name
        suggested = self._last_directory / result.suggested_filename(name)
        path, _ = QFileDialog.getSaveFileName(self, "Save Edited Image", str(suggested))
        if not path:
            self._status.showMessage("Save discarded.")
            return
        try:
            Path(path).write_bytes(result.data)
        except OSError as e:
            logger.error("Could not write %s: %s", path, e)
            QMessageBox.critical(self, "Save Failed", f"Could not write file:\n{e}")
            return
        self._last_directory = Path(path).parent
        self._status.showMessage(f"Saved: {path}")

    def _cancel(self):
        if not self._session_open():
            return
        self._session.on_cancel()
        self._update_button_states()
        self._status.showMessage("Editing cancelled.")

    def closeEvent(self, event):
        """Cancel the session and stop the render process before closing."""
        if self._session is not None:
            self._session.on_cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        super().closeEvent(event)
