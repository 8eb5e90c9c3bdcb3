"""
Qt-free image I/O utilities.

Resolves an image reference (path, URL, raw bytes or an already-decoded
PIL image) into an ``ImageResource``, opens PSD files through psd-tools,
and generates unique file paths for downloads.  Safe to import in worker
processes.
"""

import base64
import binascii
import io
import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests
from PIL import Image, ImageOps, UnidentifiedImageError
from psd_tools import PSDImage

from post_image_editor.config import URL_TIMEOUT
from post_image_editor.errors import ImageLoadError
from post_image_editor.models import ImageResource

logger = logging.getLogger(__name__)

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

_PSD_SIGNATURE = b"8BPS"


def open_image(path: Path) -> Image.Image:
    """Open an image file, using psd-tools for PSD and Pillow for the rest."""
    if path.suffix.lower() == ".psd":
        psd = PSDImage.open(str(path))
        return psd.composite()
    return Image.open(path)


def _decode_bytes(data: bytes) -> Image.Image:
    """Decode an in-memory image, PSD included."""
    if data[:4] == _PSD_SIGNATURE:
        return PSDImage.open(io.BytesIO(data)).composite()
    return Image.open(io.BytesIO(data))


def _read_data_url(url: str) -> bytes:
    """Return the payload of a ``data:`` URL."""
    header, sep, payload = url.partition(",")
    if not sep:
        raise ImageLoadError("malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise ImageLoadError(f"invalid base64 in data URL: {exc}") from exc
    return unquote(payload).encode("latin-1")


def _fetch_url(url: str) -> bytes:
    """Download an http(s) image."""
    logger.info("Fetching image from %s", url)
    try:
        response = requests.get(url, timeout=URL_TIMEOUT)
        response.raise_for_status()
    except requests.exceptions.RequestException as exc:
        raise ImageLoadError(f"could not fetch {url}: {exc}") from exc
    return response.content


def _name_from(source: str) -> str:
    stem = Path(unquote(urlparse(source).path)).stem
    return stem or "image"


def _finish(img: Image.Image, source: str | None, name: str) -> ImageResource:
    """Force a full decode, apply EXIF orientation and wrap the bitmap."""
    try:
        img.load()
        img = ImageOps.exif_transpose(img)
    except (OSError, SyntaxError) as exc:
        raise ImageLoadError(f"could not decode {source or name}: {exc}") from exc
    logger.debug("Loaded %s (%dx%d, %s)", source or name, img.width, img.height, img.mode)
    return ImageResource(
        natural_width=img.width,
        natural_height=img.height,
        bitmap=img,
        source=source,
        name=name,
    )


def load_resource(source, name: str | None = None) -> ImageResource:
    """
    Resolve *source* to a decoded ``ImageResource``.

    *source* may be an ``ImageResource`` (returned as is), a PIL image,
    raw encoded bytes, a filesystem path, or a ``file:``, ``data:``,
    ``http:`` or ``https:`` URL.  Raises ``ImageLoadError`` when the
    reference cannot be resolved or decoded.
    """
    if isinstance(source, ImageResource):
        return source
    if isinstance(source, Image.Image):
        return _finish(source, None, name or "image")
    if isinstance(source, (bytes, bytearray)):
        try:
            img = _decode_bytes(bytes(source))
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise ImageLoadError(f"could not decode image bytes: {exc}") from exc
        return _finish(img, None, name or "image")

    text = str(source)
    scheme = urlparse(text).scheme.lower() if isinstance(source, str) else ""
    try:
        if scheme in ("http", "https"):
            img = _decode_bytes(_fetch_url(text))
        elif scheme == "data":
            img = _decode_bytes(_read_data_url(text))
        else:
            path = Path(unquote(urlparse(text).path)) if scheme == "file" else Path(source)
            if not path.is_file():
                raise ImageLoadError(f"no such image file: {path}")
            img = open_image(path)
            return _finish(img, str(path), name or path.stem)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageLoadError(f"could not decode {text[:80]}: {exc}") from exc

    if scheme == "data":
        return _finish(img, None, name or "image")
    return _finish(img, text, name or _name_from(text))


def unique_path(out_path: Path) -> Path:
    """Return a unique path by appending -01, -02, etc. if file already exists."""
    if not out_path.exists():
        return out_path
    stem = out_path.stem
    suffix = out_path.suffix
    parent = out_path.parent
    counter = 1
    while True:
        candidate = parent / f"{stem}-{counter:02d}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1
