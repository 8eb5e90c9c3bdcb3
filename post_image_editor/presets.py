"""
Aspect presets and editor configuration loading.

Editor options may be overridden by a JSON file, by default ``editor.json``
in the user's config directory (provided by ``config.config_dir()``).
If the file is missing, corrupt or fails validation, the built-in
defaults are used.  The file is never written by the editor.

The on-disk format uses a versioned envelope::

    {
        "version": 1,
        "presets": [
            {"name": "Free", "ratio": null},
            {"name": "Square", "ratio": "1:1"},
            {"name": "Landscape", "ratio": 1.91}
        ],
        "min_crop_pixels": [50, 50],
        "scale_range": [0.5, 3.0],
        "output": {"format": "PNG", "compress_level": 9}
    }

Every key besides ``version`` is optional.  A ratio is ``null`` (free
form), a positive number (width / height) or a ``"W:H"`` string.
"""

import json
import logging
import math
from math import gcd
from pathlib import Path

from post_image_editor.config import (
    CONFIG_FILENAME, JPEG_QUALITY_MAX, JPEG_QUALITY_MIN,
    JPEG_SUBSAMPLING_OPTIONS, OUTPUT_FORMATS, SCALE_HARD_LIMITS, config_dir,
)
from post_image_editor.models import AspectPreset, EditorConfig, OutputOptions

logger = logging.getLogger(__name__)

_FORMAT_VERSION = 1

_PRESET_REQUIRED_KEYS = {"name", "ratio"}
_OUTPUT_KEYS = {"format", "compress_level", "jpeg_quality", "jpeg_subsampling", "jpeg_optimize"}


# =============================================================================
# Aspect-ratio helpers
# =============================================================================
def normalize_ratio(w: int, h: int) -> tuple[int, int]:
    """Reduce ratio to simplest form via GCD. (1080, 1920) → (9, 16)"""
    g = gcd(w, h)
    return w // g, h // g


def aspect_key(w: int, h: int) -> str:
    """Normalized string key for a ratio. (1080, 1350) → '4:5'"""
    nw, nh = normalize_ratio(w, h)
    return f"{nw}:{nh}"


def parse_ratio(value) -> float | None:
    """
    Parse a preset ratio into ``width / height``.

    Accepts ``None`` or ``"free"`` (free form), a positive number, a
    ``"W:H"`` string or a ``[W, H]`` pair.  Raises ValueError otherwise.
    """
    if value is None or (isinstance(value, str) and value.strip().lower() == "free"):
        return None
    if isinstance(value, bool):
        raise ValueError(f"ratio must not be a boolean, got {value!r}")
    if isinstance(value, (int, float)):
        ratio = float(value)
    elif isinstance(value, str) and ":" in value:
        left, _, right = value.partition(":")
        try:
            w, h = float(left), float(right)
        except ValueError:
            raise ValueError(f"ratio {value!r} is not of the form W:H") from None
        if h == 0:
            raise ValueError(f"ratio {value!r} has a zero height")
        ratio = w / h
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        return parse_ratio(f"{value[0]}:{value[1]}")
    else:
        raise ValueError(f"unrecognized ratio {value!r}")

    if not math.isfinite(ratio) or ratio <= 0:
        raise ValueError(f"ratio must be positive, got {value!r}")
    return ratio


def presets_from_dicts(data: list[dict]) -> list[AspectPreset]:
    """Convert validated preset dicts to ``AspectPreset`` objects."""
    return [AspectPreset(name=p["name"].strip(), ratio=parse_ratio(p["ratio"])) for p in data]


# =============================================================================
# Validation
# =============================================================================
def validate_presets(data: object) -> list[str]:
    """
    Validate a presets data structure.

    Returns a list of error strings (empty means valid).
    """
    errors: list[str] = []

    if not isinstance(data, list):
        errors.append("Presets data must be a list")
        return errors
    if not data:
        errors.append("Presets list must not be empty")
        return errors

    names_seen: set[str] = set()

    for i, preset in enumerate(data):
        prefix = f"Preset #{i + 1}"

        if not isinstance(preset, dict):
            errors.append(f"{prefix}: must be a dict")
            continue

        missing = _PRESET_REQUIRED_KEYS - preset.keys()
        if missing:
            errors.append(f"{prefix}: missing keys: {', '.join(sorted(missing))}")
            continue

        name = preset.get("name", "")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"{prefix}: name must be a non-empty string")
        elif name.strip().lower() in names_seen:
            errors.append(f"{prefix}: duplicate name '{name.strip()}'")
        else:
            names_seen.add(name.strip().lower())

        try:
            parse_ratio(preset.get("ratio"))
        except ValueError as exc:
            errors.append(f"{prefix}: {exc}")

    return errors


def validate_output(data: object) -> list[str]:
    """Validate the ``output`` section. Returns a list of error strings."""
    if not isinstance(data, dict):
        return ["output must be a dict"]

    errors: list[str] = []
    unknown = data.keys() - _OUTPUT_KEYS
    if unknown:
        errors.append(f"output: unknown keys: {', '.join(sorted(unknown))}")

    fmt = data.get("format", OUTPUT_FORMATS[0])
    if fmt not in OUTPUT_FORMATS:
        errors.append(f"output: format must be one of {', '.join(OUTPUT_FORMATS)}, got {fmt!r}")

    level = data.get("compress_level", 9)
    if not isinstance(level, int) or isinstance(level, bool) or not 0 <= level <= 9:
        errors.append(f"output: compress_level must be an integer 0-9, got {level!r}")

    quality = data.get("jpeg_quality", JPEG_QUALITY_MAX)
    if not isinstance(quality, int) or isinstance(quality, bool) or not JPEG_QUALITY_MIN <= quality <= JPEG_QUALITY_MAX:
        errors.append(
            f"output: jpeg_quality must be an integer {JPEG_QUALITY_MIN}-{JPEG_QUALITY_MAX}, got {quality!r}"
        )

    sub = data.get("jpeg_subsampling", JPEG_SUBSAMPLING_OPTIONS[0])
    if sub not in JPEG_SUBSAMPLING_OPTIONS:
        errors.append(f"output: jpeg_subsampling must be one of {', '.join(JPEG_SUBSAMPLING_OPTIONS)}")

    return errors


def _validate_pair(data: object, key: str, numeric_type) -> list[str]:
    if (
        not isinstance(data, list) or len(data) != 2
        or not all(isinstance(v, numeric_type) and not isinstance(v, bool) for v in data)
    ):
        return [f"{key} must be a list of two numbers, got {data!r}"]
    return []


def validate_config(raw: dict) -> list[str]:
    """Validate the content of a config envelope (without the version key)."""
    errors: list[str] = []
    if "presets" in raw:
        errors.extend(validate_presets(raw["presets"]))
    if "min_crop_pixels" in raw:
        pair_errors = _validate_pair(raw["min_crop_pixels"], "min_crop_pixels", int)
        if not pair_errors and min(raw["min_crop_pixels"]) < 1:
            pair_errors = ["min_crop_pixels must be positive"]
        errors.extend(pair_errors)
    if "scale_range" in raw:
        pair_errors = _validate_pair(raw["scale_range"], "scale_range", (int, float))
        if not pair_errors:
            lo, hi = raw["scale_range"]
            hard_lo, hard_hi = SCALE_HARD_LIMITS
            if not hard_lo <= lo < hi <= hard_hi:
                pair_errors = [f"scale_range must lie within {hard_lo}-{hard_hi} with min < max"]
        errors.extend(pair_errors)
    if "output" in raw:
        errors.extend(validate_output(raw["output"]))
    return errors


# =============================================================================
# Load
# =============================================================================
def default_config_path() -> Path:
    """Return the full path to editor.json."""
    return config_dir() / CONFIG_FILENAME


def load_config(path: Path | None = None) -> EditorConfig:
    """
    Load editor options from a JSON config file.

    Missing keys take their defaults.  If the file is missing, corrupt,
    lacks the version envelope or fails validation, the full default
    configuration is returned and the problem is logged.
    """
    if path is None:
        path = default_config_path()

    if not path.exists():
        logger.debug("No editor config at %s, using defaults", path)
        return EditorConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read editor config (%s), using defaults", exc)
        return EditorConfig()

    if not isinstance(raw, dict) or raw.get("version") != _FORMAT_VERSION:
        logger.warning("Editor config version mismatch or missing envelope, using defaults")
        return EditorConfig()

    errors = validate_config(raw)
    if errors:
        logger.warning(
            "Editor config validation failed:\n  %s\nUsing defaults.",
            "\n  ".join(errors),
        )
        return EditorConfig()

    kwargs = {}
    if "presets" in raw:
        kwargs["aspect_presets"] = presets_from_dicts(raw["presets"])
    if "min_crop_pixels" in raw:
        kwargs["min_crop_pixels"] = tuple(raw["min_crop_pixels"])
    if "scale_range" in raw:
        kwargs["scale_range"] = tuple(float(v) for v in raw["scale_range"])
    if "output" in raw:
        kwargs["output"] = OutputOptions(**raw["output"])

    config = EditorConfig(**kwargs)
    logger.info("Loaded editor config with %d preset(s) from %s", len(config.aspect_presets), path)
    return config


def load_presets(path: Path | None = None) -> list[AspectPreset]:
    """Return the aspect presets from the config file, or the defaults."""
    return load_config(path).aspect_presets
