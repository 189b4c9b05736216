from PIL import Image, ImageDraw, ImageFont
import os
from typing import Optional, Sequence, Tuple


def _load_font(font_path: Optional[str], font_size: int):
    if font_path and os.path.isfile(font_path):
        try:
            return ImageFont.truetype(font_path, font_size)
        except OSError:
            pass  # fall through to the default font
    try:
        return ImageFont.load_default(size=font_size)
    except TypeError:  # Pillow < 10.1 has no size argument
        return ImageFont.load_default()


def _text_size(draw: ImageDraw.ImageDraw, text: str, font) -> Tuple[int, int, int, int]:
    """(width, height, x_offset, y_offset) of text as drawn at the origin."""
    x1, y1, x2, y2 = draw.textbbox((0, 0), text, font=font)
    return x2 - x1, y2 - y1, x1, y1


def _ink_for(rgb: Tuple[int, int, int]) -> Tuple[int, int, int]:
    # Rec. 601 luma: dark swatches get white text
    luma = 0.299 * rgb[0] + 0.587 * rgb[1] + 0.114 * rgb[2]
    return (255, 255, 255) if luma < 128 else (0, 0, 0)


def create_legend_image(
    palette: Sequence[Sequence[int]],
    counts: Optional[Sequence[int]] = None,
    font_path: Optional[str] = None,
    font_size: int = 12,
    swatch_size: int = 40,
    padding: int = 10,
):
    """
    Creates a palette legend: one swatch per palette color, left to right,
    with the palette index inside the swatch and the hex code below it.
    When counts are given, the share of pixels is printed under the hex code.

    Args:
        palette (list or np.ndarray): Colors, each an RGB tuple/list/Color or array row.
        counts (sequence of int, optional): Pixels per palette entry, same order as palette.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for labels.
        swatch_size (int): Width/height of each color swatch.
        padding (int): Space around elements and between swatches.

    Returns:
        PIL.Image.Image: The legend, or None for an empty palette.
    """
    num_colors = len(palette)
    if num_colors == 0:
        return None
    if counts is not None and len(counts) != num_colors:
        raise ValueError(f"counts has {len(counts)} entries for a palette of {num_colors} colors.")

    colors = [tuple(int(c) for c in color) for color in palette]
    font = _load_font(font_path, font_size)
    scratch = ImageDraw.Draw(Image.new("RGB", (1, 1)))

    captions = []
    total = sum(int(n) for n in counts) if counts is not None else 0
    for idx, rgb in enumerate(colors):
        lines = ["#{:02x}{:02x}{:02x}".format(*rgb)]
        if counts is not None:
            share = 100.0 * int(counts[idx]) / total if total else 0.0
            lines.append(f"{share:.1f}%")
        captions.append(lines)

    line_height = max(_text_size(scratch, line, font)[1] for lines in captions for line in lines)
    caption_width = max(_text_size(scratch, line, font)[0] for lines in captions for line in lines)
    column_width = max(swatch_size, caption_width)
    caption_lines = len(captions[0])

    width = column_width * num_colors + padding * (num_colors + 1)
    height = swatch_size + caption_lines * (line_height + padding // 2) + 2 * padding + padding // 2

    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)

    for idx, rgb in enumerate(colors):
        x_column = padding + idx * (column_width + padding)
        x_swatch = x_column + (column_width - swatch_size) // 2
        y_swatch = padding
        draw.rectangle(
            [x_swatch, y_swatch, x_swatch + swatch_size, y_swatch + swatch_size],
            fill=rgb,
            outline=(0, 0, 0),
        )

        text_w, text_h, x_off, y_off = _text_size(draw, str(idx), font)
        draw.text(
            (x_swatch + (swatch_size - text_w) / 2.0 - x_off, y_swatch + (swatch_size - text_h) / 2.0 - y_off),
            str(idx), fill=_ink_for(rgb), font=font,
        )

        y_text = y_swatch + swatch_size + padding // 2
        for line in captions[idx]:
            text_w, _, x_off, y_off = _text_size(draw, line, font)
            draw.text((x_column + (column_width - text_w) / 2.0 - x_off, y_text - y_off), line, fill=(0, 0, 0), font=font)
            y_text += line_height + padding // 2

    return image
