"""
Editor constants and configuration.

DEFAULT_ASPECT_PRESETS provides the built-in social-media aspect ratios.
Presets and output settings can be overridden from a JSON file via the
presets module.  All other constants control crop-editor behaviour,
transform limits and export encoding.

The ``config_dir()`` helper returns the platform-appropriate config
directory, used as the default location for ``editor.json``.
"""

import os
import sys
from pathlib import Path

# =============================================================================
# APP IDENTITY & CONFIG DIRECTORY
# =============================================================================
APP_NAME = "post-image-editor"

CONFIG_FILENAME = "editor.json"


def config_dir() -> Path:
    """Return the platform-appropriate config directory, creating it if needed."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    directory = base / APP_NAME
    directory.mkdir(parents=True, exist_ok=True)
    return directory

# =============================================================================
# DEFAULT ASPECT PRESETS: ratio is width / height, None means free-form
# =============================================================================
DEFAULT_ASPECT_PRESETS = [
    {"name": "Free", "ratio": None},
    {"name": "Square", "ratio": "1:1"},
    {"name": "Story", "ratio": "9:16"},
    {"name": "Post", "ratio": "4:5"},
    {"name": "Banner", "ratio": "16:9"},
]

# Initial crop covers this share of the limiting dimension (percent)
INITIAL_CROP_PERCENT = 90.0

# Minimum crop size (pixels in displayed-image coordinates)
MIN_CROP_SIZE = 50

# Scale slider range, and the hard limits any configured range must respect
SCALE_RANGE_DEFAULT = (0.5, 3.0)
SCALE_HARD_LIMITS = (0.1, 10.0)
SCALE_STEP = 0.1

# Rotation buttons turn by this many degrees
ROTATE_STEP = 90

# PNG compression level (0-9, 9 = maximum compression)
PNG_COMPRESS_LEVEL = 9

# JPEG export defaults
JPEG_QUALITY_DEFAULT = 95
JPEG_QUALITY_MIN = 1
JPEG_QUALITY_MAX = 100
JPEG_SUBSAMPLING_OPTIONS = ["4:4:4", "4:2:2", "4:2:0"]
JPEG_SUBSAMPLING_DEFAULT = "4:4:4"

# Map subsampling labels to Pillow integer values
JPEG_SUBSAMPLING_MAP = {"4:4:4": 0, "4:2:2": 1, "4:2:0": 2}

# Output format options and their MIME types / file extensions
OUTPUT_FORMATS = ["PNG", "JPEG"]
OUTPUT_FORMAT_DEFAULT = "PNG"
MIME_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg"}
FILE_EXTENSIONS = {"PNG": ".png", "JPEG": ".jpg"}

# Background used when flattening transparent output for JPEG
JPEG_BACKGROUND = (255, 255, 255)

# Supported input image extensions
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp", ".gif", ".psd"}

# Timeout for resolving http(s) image URLs (seconds)
URL_TIMEOUT = 30

# Nudge amounts (pixels in displayed coordinates)
NUDGE_SMALL = 1
NUDGE_LARGE = 10

# Handle size for resize corners (pixels in screen coordinates)
HANDLE_SIZE = 10
