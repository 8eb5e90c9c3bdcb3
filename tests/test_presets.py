"""Tests for aspect presets and config loading."""

import json
import logging

import pytest

from post_image_editor.models import AspectPreset, EditorConfig, OutputOptions
from post_image_editor.presets import (
    aspect_key, load_config, load_presets, parse_ratio, presets_from_dicts, validate_config,
    validate_presets,
)


@pytest.mark.parametrize("value, expected", [
    (None, None),
    ("free", None),
    (" Free ", None),
    (1, 1.0),
    (1.91, 1.91),
    ("16:9", 16 / 9),
    ("4:5", 0.8),
    ([9, 16], 9 / 16),
])
def test_parse_ratio(value, expected):
    if expected is None:
        assert parse_ratio(value) is None
    else:
        assert parse_ratio(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", [0, -1, "16:0", "a:b", "wide", True, {}, float("inf")])
def test_parse_ratio_rejects(value):
    with pytest.raises(ValueError):
        parse_ratio(value)


def test_aspect_key_reduces():
    assert aspect_key(1080, 1350) == "4:5"
    assert aspect_key(720, 720) == "1:1"


def test_default_presets():
    presets = EditorConfig().aspect_presets
    assert [p.name for p in presets] == ["Free", "Square", "Story", "Post", "Banner"]
    assert presets[0] == AspectPreset("Free", None)
    assert presets[2].ratio == pytest.approx(9 / 16)


def test_presets_from_dicts_strips_names():
    presets = presets_from_dicts([{"name": "  Wide ", "ratio": "2:1"}])
    assert presets == [AspectPreset("Wide", 2.0)]


def test_validate_presets_reports_problems():
    errors = validate_presets([
        {"name": "A", "ratio": "1:1"},
        {"name": "a", "ratio": 2},
        {"name": "", "ratio": 1},
        {"name": "B"},
        {"name": "C", "ratio": -3},
        "nope",
    ])
    assert len(errors) == 5
    assert any("duplicate" in e for e in errors)
    assert any("missing keys: ratio" in e for e in errors)
    assert any("must be a dict" in e for e in errors)


def test_validate_presets_rejects_empty_and_non_list():
    assert validate_presets([]) == ["Presets list must not be empty"]
    assert validate_presets({"name": "x"}) == ["Presets data must be a list"]


def test_validate_config_sections():
    assert validate_config({}) == []
    assert validate_config({"scale_range": [3, 1]})
    assert validate_config({"scale_range": [0.01, 2]})
    assert validate_config({"min_crop_pixels": [0, 10]})
    assert validate_config({"output": {"format": "GIF"}})
    assert validate_config({"output": {"jpeg_quality": 0}})
    assert validate_config({"output": {"colour": "red"}})


def test_editor_config_validates_itself():
    with pytest.raises(ValueError):
        EditorConfig(scale_range=(2.0, 1.0))
    with pytest.raises(ValueError):
        EditorConfig(min_crop_pixels=(0, 50))
    with pytest.raises(ValueError):
        EditorConfig(output=OutputOptions(format="BMP"))


# --- load_config ---

def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "editor.json")
    assert config == EditorConfig()


def test_load_corrupt_file_uses_defaults(tmp_path, caplog):
    path = tmp_path / "editor.json"
    path.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        config = load_config(path)
    assert config == EditorConfig()
    assert "Failed to read editor config" in caplog.text


def test_load_wrong_version_uses_defaults(tmp_path):
    path = _write(tmp_path / "editor.json", {"version": 99, "presets": [{"name": "X", "ratio": 2}]})
    assert load_config(path) == EditorConfig()


def test_load_invalid_content_uses_defaults(tmp_path, caplog):
    path = _write(tmp_path / "editor.json", {"version": 1, "presets": [{"name": "X", "ratio": 0}]})
    with caplog.at_level(logging.WARNING):
        assert load_config(path) == EditorConfig()
    assert "validation failed" in caplog.text


def test_load_valid_file(tmp_path):
    path = _write(tmp_path / "editor.json", {
        "version": 1,
        "presets": [{"name": "Free", "ratio": None}, {"name": "Landscape", "ratio": 1.91}],
        "min_crop_pixels": [20, 30],
        "scale_range": [1, 4],
        "output": {"format": "JPEG", "jpeg_quality": 85, "jpeg_subsampling": "4:2:0"},
    })
    config = load_config(path)
    assert config.aspect_presets == [AspectPreset("Free", None), AspectPreset("Landscape", 1.91)]
    assert config.min_crop_pixels == (20, 30)
    assert config.scale_range == (1.0, 4.0)
    assert config.output.format == "JPEG"
    assert config.output.jpeg_quality == 85
    assert config.output.mime_type == "image/jpeg"


def test_load_presets(tmp_path):
    path = _write(tmp_path / "editor.json", {"version": 1, "presets": [{"name": "Wide", "ratio": [21, 9]}]})
    presets = load_presets(path)
    assert [p.name for p in presets] == ["Wide"]
    assert presets[0].ratio == pytest.approx(21 / 9)
    assert [p.name for p in load_presets(tmp_path / "missing.json")][0] == "Free"
