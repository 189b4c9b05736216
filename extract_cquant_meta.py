#!/usr/bin/env python3
import sys
from pathlib import Path

from PIL import UnidentifiedImageError

from cquant.file_utils import read_png_metadata


def print_png_metadata(filepath: Path) -> int:
    """
    Prints the cquant metadata of a PNG written by cquantize. Returns an exit code.
    """
    print(f"--- cquant metadata for: {filepath.name} ---")
    try:
        metadata = read_png_metadata(filepath)
    except (FileNotFoundError, UnidentifiedImageError) as e:
        print(f"Error reading {filepath}: {e}")
        return 1

    if not metadata:
        print("  No cquant metadata found.")
    for key, value in metadata.items():
        print(f"  {key}: {value}")
    print("-" * (30 + len(filepath.name)))
    return 0


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python extract_cquant_meta.py <filename.png>")
        return 1

    filepath = Path(sys.argv[1])
    if not filepath.is_file():
        print(f"Error: File not found: {filepath}")
        return 1
    if filepath.suffix.lower() != ".png":
        print(f"Error: Unsupported file type '{filepath.suffix}'. Only .png files carry metadata.")
        return 1
    return print_png_metadata(filepath)


if __name__ == "__main__":
    sys.exit(main())
