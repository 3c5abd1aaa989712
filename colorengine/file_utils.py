import json
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Optional, Sequence
from xml.etree.ElementTree import Element, SubElement

import svgwrite
from PIL import Image, PngImagePlugin
from svgwrite.base import BaseElement

from colorengine.color_space import relative_luminance
from colorengine.models import ExtractedColor, ExtractionResult

SOFTWARE = "palettegen"
METADATA_PREFIX = "palettegen"
PALETTEGEN_NS = "urn:palettegen:metadata"


class Verbatim(BaseElement):
    """An svgwrite element that writes a pre-serialised XML block as-is."""

    def __init__(self, xml_string="", elementname="metadata", **kwargs):
        self.elementname = elementname
        super(Verbatim, self).__init__(**kwargs)
        self.xml_string = xml_string

    def write(self, fileobj, indent=0, newline='\n', options={}):
        if getattr(self, 'debug', False):
            # the profile's element table raises KeyError for unknown names
            self.validator._get_element(self.elementname)
        fileobj.write(self.xml_string)

    def get_xml(self):
        # dwg.tostring() appends this to an ElementTree, so it must be an Element
        return ET.fromstring(self.xml_string)


def clean_metadata_key(key: str) -> str:
    """Make a free-form key safe for a PNG tEXt keyword or an XML tag name."""
    cleaned = re.sub(r'\s+', '_', key)
    cleaned = re.sub(r'[^a-zA-Z0-9_.-]', '', cleaned)
    if not re.match(r'^[a-zA-Z_]', cleaned):
        cleaned = f"{METADATA_PREFIX}_" + cleaned
    # tEXt keywords are limited to 79 bytes including the prefix
    return cleaned[:70]


def save_palette_png(
    image_to_save: Image.Image,
    output_path: Path,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
):
    """
    Saves a PIL Image as PNG with `palettegen:`-prefixed tEXt metadata.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    png_info = PngImagePlugin.PngInfo()
    png_info.add_text("Software", SOFTWARE)
    if command_line_invocation:
        png_info.add_text(f"{METADATA_PREFIX}:command_line", command_line_invocation)
    for key, value in (additional_metadata or {}).items():
        png_info.add_text(f"{METADATA_PREFIX}:{clean_metadata_key(key)}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)


def _metadata_block(command_line_invocation, additional_metadata) -> str:
    ET.register_namespace(METADATA_PREFIX, PALETTEGEN_NS)
    root = Element('metadata')
    root.set('id', 'palettegenMetadataContainer')
    block = SubElement(root, f'{{{PALETTEGEN_NS}}}palettegenMetadata')

    SubElement(block, f'{{{PALETTEGEN_NS}}}Software').text = SOFTWARE
    if command_line_invocation:
        SubElement(block, f'{{{PALETTEGEN_NS}}}CommandLineInvocation').text = command_line_invocation
    for key, value in (additional_metadata or {}).items():
        SubElement(block, f'{{{PALETTEGEN_NS}}}{clean_metadata_key(key)}').text = str(value)
    return ET.tostring(root, encoding='unicode', method='xml')


def save_palette_svg(
    output_path: Path,
    colors: Sequence[ExtractedColor],
    swatch_size: int = 80,
    padding: int = 10,
    columns: Optional[int] = None,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
):
    """
    Writes an SVG swatch sheet: one labelled square per color, laid out in a
    grid of `columns` (default: all on one row), plus a metadata block.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    count = len(colors)
    columns = max(1, columns or count or 1)
    rows = max(1, -(-count // columns))
    label_height = 16
    cell_height = swatch_size + label_height
    width = padding + columns * (swatch_size + padding)
    height = padding + rows * (cell_height + padding)

    dwg = svgwrite.Drawing(filename=str(output_path), size=(f"{width}px", f"{height}px"), profile='full')
    dwg.add(Verbatim(
        xml_string=_metadata_block(command_line_invocation, additional_metadata),
        elementname='metadata',
        profile=dwg.profile,
        debug=dwg.debug,
    ))

    swatches = dwg.g(id="palette-swatches", style="stroke:#000000; stroke-width:1px;")
    labels = dwg.g(id="palette-labels", style="font-family:monospace; text-anchor:middle; font-size:11px;")
    for idx, extracted in enumerate(colors):
        row, col = divmod(idx, columns)
        x = padding + col * (swatch_size + padding)
        y = padding + row * (cell_height + padding)
        swatches.add(dwg.rect(insert=(x, y), size=(swatch_size, swatch_size), fill=extracted.hex))

        ink = "#000000" if relative_luminance(extracted.color) > 0.4 else "#ffffff"
        labels.add(dwg.text(str(idx), insert=(x + swatch_size / 2, y + swatch_size / 2 + 4), fill=ink))
        labels.add(dwg.text(extracted.hex, insert=(x + swatch_size / 2, y + swatch_size + 12), fill="#000000"))
    dwg.add(swatches)
    dwg.add(labels)

    dwg.save(pretty=True)


def save_palette_json(output_path: Path, result: ExtractionResult, additional_metadata: Optional[dict] = None):
    """Writes an ExtractionResult as indented JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = result.to_dict()
    if additional_metadata:
        payload["metadata"] = dict(additional_metadata)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def read_png_metadata(filepath: Path) -> Dict[str, str]:
    """The `palettegen:` tEXt entries of a PNG, keyed without the prefix."""
    prefix = f"{METADATA_PREFIX}:"
    with Image.open(filepath) as img:
        return {key[len(prefix):]: value for key, value in img.info.items() if key.startswith(prefix)}


def read_svg_metadata(filepath: Path) -> Dict[str, str]:
    """
    The palettegen-namespaced entries of an SVG's <metadata> block.

    Raises:
        xml.etree.ElementTree.ParseError: if the file is not well-formed XML.
    """
    svg_ns = 'http://www.w3.org/2000/svg'
    root = ET.parse(filepath).getroot()
    found = {}
    for metadata in root.iter(f'{{{svg_ns}}}metadata'):
        for element in metadata.iter():
            if element.tag.startswith(f'{{{PALETTEGEN_NS}}}') and len(element) == 0:
                local_name = element.tag.split('}', 1)[1]
                found[local_name] = element.text.strip() if element.text else ''
    return found
