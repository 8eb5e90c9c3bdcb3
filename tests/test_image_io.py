"""Tests for resolving image references."""

import base64
import io

import pytest
import requests
from PIL import Image

from post_image_editor import image_io
from post_image_editor.errors import ImageLoadError
from post_image_editor.image_io import load_resource, unique_path
from post_image_editor.models import ImageResource


def _png_bytes(size=(30, 20), color=(10, 20, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, "PNG")
    return buf.getvalue()


def test_load_from_path(tmp_path):
    path = tmp_path / "holiday.png"
    path.write_bytes(_png_bytes())
    resource = load_resource(path)
    assert resource.natural_size == (30, 20)
    assert resource.name == "holiday"
    assert resource.source == str(path)
    assert resource.bitmap.size == (30, 20)


def test_load_from_file_url(tmp_path):
    path = tmp_path / "beach.png"
    path.write_bytes(_png_bytes())
    resource = load_resource(path.as_uri())
    assert resource.name == "beach"
    assert resource.natural_size == (30, 20)


def test_load_from_bytes_and_image():
    assert load_resource(_png_bytes((7, 9))).natural_size == (7, 9)
    resource = load_resource(Image.new("RGBA", (5, 6)), name="pasted")
    assert resource.natural_size == (5, 6)
    assert resource.name == "pasted"


def test_resource_passes_through():
    resource = ImageResource(10, 10, name="x")
    assert load_resource(resource) is resource


def test_load_from_data_url():
    url = "data:image/png;base64," + base64.b64encode(_png_bytes((3, 4))).decode("ascii")
    resource = load_resource(url)
    assert resource.natural_size == (3, 4)
    assert resource.source is None


def test_bad_data_url():
    with pytest.raises(ImageLoadError):
        load_resource("data:image/png;base64,@@@")
    with pytest.raises(ImageLoadError):
        load_resource("data:image/png;base64")


def test_exif_orientation_is_applied(tmp_path):
    img = Image.new("RGB", (40, 10))
    exif = img.getexif()
    exif[0x0112] = 6  # rotate 90° CW on display
    path = tmp_path / "phone.jpg"
    img.save(path, "JPEG", exif=exif)
    assert load_resource(path).natural_size == (10, 40)


class _FakeResponse:
    def __init__(self, content=b"", status=200):
        self.content = content
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


def test_load_from_http(monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return _FakeResponse(_png_bytes((12, 8)))

    monkeypatch.setattr(image_io.requests, "get", fake_get)
    resource = load_resource("https://example.com/media/sunset%20sky.png?w=100")
    assert resource.natural_size == (12, 8)
    assert resource.name == "sunset sky"
    assert calls == [("https://example.com/media/sunset%20sky.png?w=100", image_io.URL_TIMEOUT)]


def test_http_error_raises_load_error(monkeypatch):
    monkeypatch.setattr(image_io.requests, "get", lambda url, timeout: _FakeResponse(status=404))
    with pytest.raises(ImageLoadError):
        load_resource("http://example.com/missing.png")


def test_network_failure_raises_load_error(monkeypatch):
    def boom(url, timeout):
        raise requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr(image_io.requests, "get", boom)
    with pytest.raises(ImageLoadError):
        load_resource("http://example.com/a.png")


def test_missing_file(tmp_path):
    with pytest.raises(ImageLoadError):
        load_resource(tmp_path / "nope.png")


def test_not_an_image(tmp_path):
    path = tmp_path / "notes.png"
    path.write_text("hello", encoding="utf-8")
    with pytest.raises(ImageLoadError):
        load_resource(path)
    with pytest.raises(ImageLoadError):
        load_resource(b"garbage")


def test_unique_path(tmp_path):
    target = tmp_path / "photo-edited.png"
    assert unique_path(target) == target
    target.write_bytes(b"x")
    assert unique_path(target).name == "photo-edited-01.png"
    (tmp_path / "photo-edited-01.png").write_bytes(b"x")
    assert unique_path(target).name == "photo-edited-02.png"
