"""
Launcher for the post image editor window.

Usage:
    python -m post_image_editor [IMAGE]
    post-image-editor [IMAGE]      (after pip install)

IMAGE may be a file path or an http(s), file or data URL.
"""

import logging
import sys

from PyQt6.QtWidgets import QApplication

from post_image_editor.main_window import EditorWindow
from post_image_editor.presets import load_config

EDITOR_STYLESHEET = """
    QMainWindow, QWidget { background: #1f2227; color: #e4e6ea; font-size: 10pt; }
    QGroupBox {
        border: 1px solid #3b4048; border-radius: 6px;
        margin-top: 10px; padding-top: 14px; font-weight: 600;
    }
    QGroupBox::title { subcontrol-origin: margin; left: 10px; padding: 0 3px; color: #9aa3ad; }
    QPushButton {
        background: #2c3038; border: 1px solid #3b4048; border-radius: 5px; padding: 5px 10px;
    }
    QPushButton:hover { background: #363b44; }
    QPushButton:pressed { background: #23262c; }
    QPushButton:checked { background: #1f7a8c; border-color: #2aa3b8; color: #fff; }
    QPushButton:disabled { color: #5c626b; }
    QSlider::groove:horizontal { height: 4px; background: #3b4048; border-radius: 2px; }
    QSlider::handle:horizontal { background: #2aa3b8; width: 12px; margin: -5px 0; border-radius: 6px; }
    QToolBar { background: #262a30; border-bottom: 1px solid #3b4048; spacing: 6px; padding: 3px; }
    QStatusBar { background: #262a30; border-top: 1px solid #3b4048; color: #9aa3ad; }
"""


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication(sys.argv)
    app.setStyleSheet(EDITOR_STYLESHEET)

    window = EditorWindow(load_config())
    window.show()

    args = app.arguments()[1:]
    if args:
        window.load_source(args[0])

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
