"""
Getting pixels into an ImageBuffer: Pillow loading and synthetic test images.
"""
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from colorengine.models import ImageBuffer

Color = Tuple[int, int, int]


def image_from_pil(image: Image.Image) -> ImageBuffer:
    """Convert any Pillow image (palette, greyscale, RGB, ...) to an RGBA buffer."""
    rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8)
    return ImageBuffer.from_array(rgba)


def image_from_path(path, max_dimension: Optional[int] = None) -> ImageBuffer:
    """
    Load an image file as an RGBA buffer.

    Args:
        path: image file path.
        max_dimension (int, optional): if given, the image is downscaled so
            its longer side is at most this many pixels (aspect preserved).

    Raises:
        FileNotFoundError: if the path does not exist.
        PIL.UnidentifiedImageError: if Pillow cannot read the file.
    """
    with Image.open(path) as image:
        image.load()
        if max_dimension and max(image.size) > max_dimension:
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        return image_from_pil(image)


def image_to_pil(image: ImageBuffer) -> Image.Image:
    return Image.fromarray(image.rgba(), "RGBA")


def _buffer(rgb: np.ndarray, alpha: int = 255) -> ImageBuffer:
    h, w, _ = rgb.shape
    a = np.full((h, w, 1), alpha, dtype=np.uint8)
    return ImageBuffer.from_array(np.concatenate([np.clip(rgb, 0, 255).astype(np.uint8), a], axis=2))


def _grid(width: int, height: int):
    ys, xs = np.mgrid[0:height, 0:width]
    return xs.astype(np.float64), ys.astype(np.float64)


# ---------------------------------------------------------------------------
# Synthetic images
# ---------------------------------------------------------------------------

def gradient(width: int, height: int) -> ImageBuffer:
    """Red fading to blue left to right, green rising top to bottom."""
    xs, ys = _grid(width, height)
    rgb = np.stack([
        np.floor((1 - xs / width) * 255),
        np.floor(ys / height * 255),
        np.floor(xs / width * 255),
    ], axis=2)
    return _buffer(rgb)


def vertical_gradient(width: int, height: int, top: Color = (255, 255, 255), bottom: Color = (0, 0, 0)) -> ImageBuffer:
    """Linear blend from `top` on the first row to `bottom` on the last."""
    t = np.linspace(0.0, 1.0, height)[:, None, None] if height > 1 else np.zeros((1, 1, 1))
    column = np.asarray(top, dtype=np.float64) * (1 - t) + np.asarray(bottom, dtype=np.float64) * t
    rgb = np.floor(np.broadcast_to(column, (height, width, 3)) + 0.5)
    return _buffer(rgb)


def checkerboard(width: int, height: int, block_size: int = 32) -> ImageBuffer:
    xs, ys = _grid(width, height)
    even = ((xs // block_size + ys // block_size) % 2) == 0
    value = np.where(even, 255, 0)
    return _buffer(np.stack([value, value, value], axis=2))


def solid(width: int, height: int, color: Color = (128, 128, 128), alpha: int = 255) -> ImageBuffer:
    rgb = np.empty((height, width, 3))
    rgb[:, :] = color
    return _buffer(rgb, alpha)


def transparent(width: int, height: int) -> ImageBuffer:
    return solid(width, height, (0, 0, 0), alpha=0)


def color_blocks(width: int, height: int,
                 colors: Sequence[Color] = ((255, 0, 0), (0, 255, 0), (0, 0, 255))) -> ImageBuffer:
    """Equal-width vertical bands of solid color."""
    xs, _ = _grid(width, height)
    band = np.minimum((xs * len(colors) // max(width, 1)).astype(np.intp), len(colors) - 1)
    return _buffer(np.asarray(colors, dtype=np.float64)[band])


def random_palette(width: int, height: int, color_count: int = 256,
                   rng: Optional[np.random.Generator] = None) -> ImageBuffer:
    """Every pixel drawn from a random palette of `color_count` colors."""
    rng = rng if rng is not None else np.random.default_rng(12345)
    palette = rng.integers(0, 256, size=(color_count, 3))
    picks = rng.integers(0, color_count, size=(height, width))
    return _buffer(palette[picks].astype(np.float64))


def natural(width: int, height: int, rng: Optional[np.random.Generator] = None) -> ImageBuffer:
    """Smooth sine/cosine color fields with a little noise, loosely photo-like."""
    rng = rng if rng is not None else np.random.default_rng(12345)
    xs, ys = _grid(width, height)
    noise = rng.random((height, width, 3)) * 40 - 20
    rgb = np.stack([
        128 + 80 * np.sin(xs * 0.05) * np.cos(ys * 0.03),
        128 + 60 * np.sin(xs * 0.02 + ys * 0.04),
        128 + 70 * np.cos(ys * 0.05) * np.sin(xs * 0.01),
    ], axis=2)
    return _buffer(np.floor(rgb + noise))


def geometric(width: int, height: int) -> ImageBuffer:
    """Diagonal stripes with a filled circle in the centre."""
    xs, ys = _grid(width, height)
    stripes = ((xs + ys) // 16) % 3
    palette = np.array([(230, 190, 40), (40, 120, 200), (240, 240, 235)], dtype=np.float64)
    rgb = palette[stripes.astype(np.intp)]
    radius = min(width, height) / 4
    inside = (xs - width / 2) ** 2 + (ys - height / 2) ** 2 <= radius ** 2
    rgb[inside] = (200, 40, 60)
    return _buffer(rgb)
