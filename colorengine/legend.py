import os

from PIL import Image, ImageDraw, ImageFont

from colorengine.color_space import relative_luminance
from colorengine.models import ExtractedColor, RGBColor

FREQUENCY_BAR_HEIGHT = 6


def _swatch_color(item):
    """RGB tuple and frequency (or None) for one palette entry."""
    if isinstance(item, ExtractedColor):
        return item.color.as_tuple(), item.frequency
    if isinstance(item, RGBColor):
        return item.as_tuple(), None
    if hasattr(item, 'tolist'):  # numpy rows
        item = item.tolist()
    if isinstance(item, (list, tuple)) and len(item) == 3:
        return tuple(int(c) for c in item), None
    raise ValueError(f"Cannot interpret {item!r} as an RGB color.")


def _load_font(font_path, font_size):
    if font_path and os.path.isfile(font_path):
        try:
            return ImageFont.truetype(font_path, font_size)
        except OSError:
            pass  # fall through to the default font
    try:
        return ImageFont.load_default(size=font_size)
    except TypeError:  # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


def create_legend_image(colors, font_path=None, font_size=14, swatch_size=40, padding=10, show_frequency=True):
    """
    Creates a palette legend PIL Image: one numbered swatch per color.

    Args:
        colors: ExtractedColor / RGBColor objects, RGB tuples, or an Nx3 array.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the index numbers.
        swatch_size (int): Width/height of each color swatch.
        padding (int): Space around elements and between swatches.
        show_frequency (bool): Draw a bar under each swatch proportional to the
            color's frequency. Only entries that carry a frequency get a bar.

    Returns:
        PIL.Image.Image: The legend image, or None for an empty palette.
    """
    entries = [_swatch_color(c) for c in colors]
    if not entries:
        return None

    has_bars = show_frequency and any(freq is not None for _, freq in entries)
    num_colors = len(entries)
    width = (swatch_size * num_colors) + (padding * (num_colors + 1))
    height = swatch_size + (2 * padding)
    if has_bars:
        height += FREQUENCY_BAR_HEIGHT + padding

    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)
    font = _load_font(font_path, font_size)

    for idx, (rgb, frequency) in enumerate(entries):
        x0 = padding + idx * (swatch_size + padding)
        y0 = padding
        draw.rectangle([x0, y0, x0 + swatch_size, y0 + swatch_size], fill=rgb, outline=(0, 0, 0))

        # Center the index in the swatch; bbox offsets account for glyph bearing
        label = str(idx)
        left, top, right, bottom = font.getbbox(label)
        text_x = x0 + (swatch_size - (right - left)) / 2.0 - left
        text_y = y0 + (swatch_size - (bottom - top)) / 2.0 - top
        ink = (0, 0, 0) if relative_luminance(rgb) > 0.4 else (255, 255, 255)
        draw.text((text_x, text_y), label, fill=ink, font=font)

        if has_bars and frequency is not None:
            bar_y = y0 + swatch_size + padding
            draw.rectangle([x0, bar_y, x0 + swatch_size, bar_y + FREQUENCY_BAR_HEIGHT], outline=(160, 160, 160))
            filled = int(round(swatch_size * frequency))
            if filled > 0:
                draw.rectangle([x0, bar_y, x0 + filled, bar_y + FREQUENCY_BAR_HEIGHT], fill=rgb)

    return image
