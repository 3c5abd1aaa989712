# tests/test_legend.py
import numpy as np
from PIL import Image

from colorengine import legend
from colorengine.legend import FREQUENCY_BAR_HEIGHT
from colorengine.models import ExtractedColor, RGBColor


def test_create_legend_image_returns_image(tmp_path):
    palette = [
        (255, 0, 0),    # red
        (0, 255, 0),    # green
        (0, 0, 255)     # blue
    ]

    legend_image = legend.create_legend_image(palette, font_size=12, swatch_size=20, padding=5)
    assert isinstance(legend_image, Image.Image)

    # plain tuples carry no frequency, so there is no bar row
    num_colors = len(palette)
    expected_width = (20 * num_colors) + (5 * (num_colors + 1))
    expected_height = 20 + (2 * 5)
    assert legend_image.size == (expected_width, expected_height)

    outpath = tmp_path / "legend_test_output.png"
    legend_image.save(outpath)
    assert outpath.exists()


def test_create_legend_image_with_empty_palette():
    assert legend.create_legend_image([]) is None


def test_create_legend_image_handles_numpy_palette():
    palette = np.array([
        [255, 255, 0],
        [0, 255, 255]
    ], dtype=np.uint8)

    img = legend.create_legend_image(palette, font_size=10, swatch_size=15, padding=2)
    assert isinstance(img, Image.Image)
    assert img.size[1] == 15 + (2 * 2)


def test_extracted_colors_get_frequency_bars():
    palette = [
        ExtractedColor(RGBColor(200, 30, 30), 1.0, 0.9, 0.9),
        ExtractedColor(RGBColor(30, 30, 200), 0.0, 0.9, 0.9),
    ]
    img = legend.create_legend_image(palette, swatch_size=20, padding=5)
    assert img.size == (20 * 2 + 5 * 3, 20 + 2 * 5 + FREQUENCY_BAR_HEIGHT + 5)

    # the full-frequency bar is filled with its swatch color
    bar_y = 5 + 20 + 5 + FREQUENCY_BAR_HEIGHT // 2
    assert img.getpixel((5 + 10, bar_y)) == (200, 30, 30)
    # an empty bar stays white inside its outline
    assert img.getpixel((5 + 25 + 10, bar_y)) == (255, 255, 255)

    no_bars = legend.create_legend_image(palette, swatch_size=20, padding=5, show_frequency=False)
    assert no_bars.size[1] == 20 + 2 * 5


def test_swatch_fill_matches_color():
    img = legend.create_legend_image([RGBColor(12, 140, 90)], swatch_size=30, padding=4, show_frequency=False)
    # a corner of the swatch, away from the centred index label
    assert img.getpixel((4 + 3, 4 + 3)) == (12, 140, 90)
