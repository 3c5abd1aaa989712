#!/usr/bin/env python3
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

from PIL import UnidentifiedImageError

from colorengine.file_utils import read_png_metadata, read_svg_metadata

READERS = {
    ".png": read_png_metadata,
    ".svg": read_svg_metadata,
}


def print_metadata(filepath: Path) -> int:
    reader = READERS.get(filepath.suffix.lower())
    if reader is None:
        print(f"Error: Unsupported file type '{filepath.suffix}'. Please provide a .png or .svg file.")
        return 1

    kind = filepath.suffix.lower().lstrip(".").upper()
    header = f"--- palettegen metadata for {kind}: {filepath.name} ---"
    print(header)
    try:
        metadata = reader(filepath)
    except (ET.ParseError, UnidentifiedImageError) as e:
        print(f"Error: Could not parse {filepath}: {e}")
        return 1

    if not metadata:
        print("  No palettegen-specific metadata found.")
    for key, value in metadata.items():
        print(f"  {key}: {value}")
    print("-" * len(header))
    return 0


def main():
    if len(sys.argv) < 2:
        print("Usage: python extract_palettegen_meta.py <filename.png_or_svg>")
        sys.exit(1)

    filepath = Path(sys.argv[1])
    if not filepath.is_file():
        print(f"Error: File not found: {filepath}")
        sys.exit(1)
    sys.exit(print_metadata(filepath))


if __name__ == "__main__":
    main()
