import sys
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]

# Make the package importable without an install.
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from post_image_editor.image_io import load_resource  # noqa: E402


def quadrant_image(width: int = 4, height: int = 4) -> Image.Image:
    """RGBA image with a distinct color in each quadrant: red TL, green TR, blue BL, white BR."""
    img = Image.new("RGBA", (width, height))
    half_w, half_h = width // 2, height // 2
    for y in range(height):
        for x in range(width):
            if y < half_h:
                color = (255, 0, 0, 255) if x < half_w else (0, 255, 0, 255)
            else:
                color = (0, 0, 255, 255) if x < half_w else (255, 255, 255, 255)
            img.putpixel((x, y), color)
    return img


@pytest.fixture
def quadrant_resource():
    return load_resource(quadrant_image(4, 4), name="quad")


@pytest.fixture
def photo_resource():
    """A 1000×800 source image."""
    return load_resource(Image.new("RGB", (1000, 800), (40, 120, 200)), name="photo")
