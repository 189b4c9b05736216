import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
from PIL import Image, PngImagePlugin

from cquant.color import ColorGrid
from cquant.errors import MalformedGridError

logger = logging.getLogger(__name__)

PNG_METADATA_PREFIX = "cquant:"
SOFTWARE_TAG = "cquant color quantizer"
IMAGE_EXTENSIONS = (".bmp", ".png", ".jpg", ".jpeg", ".gif", ".tif", ".tiff", ".webp")


def load_color_grid(path: Union[str, Path]) -> ColorGrid:
    """
    Decode an image file into a ColorGrid. Alpha is dropped, palette and
    grayscale images are expanded to RGB.

    Raises:
        FileNotFoundError, PIL.UnidentifiedImageError: from Pillow.
        MalformedGridError: if the image has no pixels.
    """
    with Image.open(path) as img:
        rgb = img.convert("RGB")
    if rgb.width == 0 or rgb.height == 0:
        raise MalformedGridError(f"Image {path} has zero dimension.")
    logger.debug("Loaded %s (%dx%d)", path, rgb.width, rgb.height)
    return ColorGrid(np.array(rgb))


def grid_to_image(grid: ColorGrid) -> Image.Image:
    return Image.fromarray(grid.to_array(), "RGB")


def _clean_metadata_key(key: str) -> str:
    key_clean = re.sub(r'\s+', '_', key)
    key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
    if not re.match(r'^[a-zA-Z_]', key_clean):  # must start with letter or underscore
        key_clean = "cquant_" + key_clean
    # tEXt keywords are limited to 79 bytes, leave room for the prefix
    return key_clean[:70]


def save_quantized_image(
    image_to_save: Image.Image,
    output_path: Union[str, Path],
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None,
) -> Path:
    """
    Save an image, creating parent directories as needed. The format follows
    the file suffix. PNG files get the command line and additional_metadata
    embedded as tEXt chunks prefixed with 'cquant:'; other formats (BMP, ...)
    cannot carry them and are written plain.

    Returns:
        Path: The path written.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if output_path.suffix.lower() != ".png":
        if additional_metadata or command_line_invocation:
            logger.debug("Metadata not embedded in %s: only PNG output carries it", output_path.name)
        image_to_save.save(output_path)
        return output_path

    png_info = PngImagePlugin.PngInfo()
    png_info.add_text("Software", SOFTWARE_TAG)
    if command_line_invocation:
        png_info.add_text(f"{PNG_METADATA_PREFIX}command_line", command_line_invocation)
    if additional_metadata:
        for key, value in additional_metadata.items():
            png_info.add_text(f"{PNG_METADATA_PREFIX}{_clean_metadata_key(key)}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)
    return output_path


def read_png_metadata(path: Union[str, Path]) -> Dict[str, str]:
    """Return the 'cquant:' tEXt entries of a PNG, keys without the prefix."""
    with Image.open(path) as img:
        return {
            key[len(PNG_METADATA_PREFIX):]: value
            for key, value in img.info.items()
            if isinstance(key, str) and key.startswith(PNG_METADATA_PREFIX)
        }


def build_output_path(
    base_dir: Union[str, Path],
    run_id: str,
    name: str,
    *fields: str,
    suffix: str = ".png",
) -> Path:
    """
    Output location for batch runs, directories created:
    base_dir/run_id/name/field1/field2/run_id_name_field1_field2<suffix>
    """
    directory = Path(base_dir) / run_id / name
    for field in fields:
        directory = directory / field
    directory.mkdir(parents=True, exist_ok=True)
    stem = "_".join([run_id, name, *fields])
    return directory / f"{stem}{suffix}"


def find_images(directory: Union[str, Path], extensions: Iterable[str] = IMAGE_EXTENSIONS) -> List[Path]:
    """Image files directly inside directory (not recursive), sorted by name."""
    wanted = {ext.lower() for ext in extensions}
    return sorted(p for p in Path(directory).iterdir() if p.is_file() and p.suffix.lower() in wanted)
