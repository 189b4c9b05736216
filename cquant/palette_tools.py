from PIL import Image
import numpy as np
from typing import Optional, Sequence

from cquant.cluster import ColorMap, DEFAULT_MAX_ITERATIONS, assign_to_nearest, refine, check_grid
from cquant.color import Color, ColorGrid, Palette, colors_to_array, pack_rgb, unpack_rgb
from cquant.errors import InvalidArgumentError
from cquant.metrics import get_metric


def generate_initial_palette(grid: ColorGrid, num_colors: int, metric=None) -> Palette:
    """
    Pick num_colors seed colors by greedy farthest-point selection.

    The first seed is the top-left pixel. Each further seed is the color whose
    distance to its nearest existing seed is largest; among colors tied on that
    distance the one with the larger packed RGB value wins. No randomness, so
    the same grid always gives the same seeds. Seeds are not de-duplicated:
    once every distinct color is chosen, the remaining picks repeat colors.

    Args:
        grid (ColorGrid): Source pixels, non-empty.
        num_colors (int): Palette size K >= 1.
        metric: Metric instance or name. Default squared-euclidean.

    Returns:
        list[Color]: K seed colors.
    """
    check_grid(grid)
    if num_colors is None or num_colors < 1:
        raise InvalidArgumentError(f"num_colors must be a positive integer, got {num_colors}.")
    metric = get_metric(metric)

    # Selection depends only on color values, so distinct colors are enough
    colors, _ = grid.unique_colors()
    packed = pack_rgb(colors)

    seeds: Palette = [grid[0, 0]]
    nearest = metric.distances(colors, seeds[0])
    for _ in range(1, num_colors):
        farthest = nearest.max()
        tied = np.flatnonzero(nearest == farthest)
        pick = tied[np.argmax(packed[tied])]
        seed = Color.from_array(colors[pick])
        seeds.append(seed)
        nearest = np.minimum(nearest, metric.distances(colors, seed))

    return seeds


def apply_color_map(grid: ColorGrid, color_map: ColorMap) -> ColorGrid:
    """
    Rewrite every cell of the grid through color_map.

    Returns:
        ColorGrid: Same dimensions as the input.
    """
    check_grid(grid)
    flat = grid.pixels.reshape(-1, 3)
    unique_packed, inverse = np.unique(pack_rgb(flat), return_inverse=True)

    targets = np.empty((len(unique_packed), 3), dtype=np.uint8)
    for j, rgb in enumerate(unpack_rgb(unique_packed)):
        color = Color.from_array(rgb)
        try:
            targets[j] = color_map[color]
        except KeyError:
            raise InvalidArgumentError(f"Color {tuple(color)} of the grid has no entry in the color map.") from None

    return ColorGrid(targets[inverse.reshape(-1)].reshape(grid.rows, grid.cols, 3))


def map_grid_to_palette(grid: ColorGrid, palette: Sequence[Sequence[int]], metric=None) -> ColorGrid:
    """
    Map every pixel to the nearest color in a fixed palette.

    Args:
        grid (ColorGrid): Pixels to map.
        palette: Sequence of RGB colors (list of tuples or Nx3 array).
        metric: Metric instance or name. Default squared-euclidean.

    Returns:
        ColorGrid: Grid of the same shape whose colors are all drawn from palette.
    """
    check_grid(grid)
    if palette is None or len(palette) == 0:
        raise InvalidArgumentError("Palette must contain at least one color.")
    palette_arr = colors_to_array(palette)
    metric = get_metric(metric)

    flat = grid.pixels.reshape(-1, 3)
    unique_packed, inverse = np.unique(pack_rgb(flat), return_inverse=True)
    nearest = assign_to_nearest(unpack_rgb(unique_packed), palette_arr, metric)
    mapped = palette_arr[nearest][inverse.reshape(-1)]
    return ColorGrid(mapped.reshape(grid.rows, grid.cols, 3))


def extract_palette_from_image(
    path,
    max_colors: int = 24,
    metric=None,
    max_side: Optional[int] = 100,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> np.ndarray:
    """
    Extract a palette from an image (e.g. a reference swatch sheet).

    Args:
        path (str or Path): Path to the palette image.
        max_colors (int): Number of colors to extract.
        metric: Metric instance or name. Default squared-euclidean.
        max_side (int, optional): Downsample so the longest side is at most this
            many pixels. Nearest-neighbour, so no blended colors are introduced.
            None keeps full resolution.
        max_iterations (int): Cap on refinement passes.

    Returns:
        np.ndarray: Array of RGB colors (uint8) with shape (max_colors, 3).
    """
    with Image.open(path) as img:
        image = img.convert("RGB")
    if max_side and max(image.size) > max_side:
        # resize() rather than thumbnail(): thumbnail's reducing_gap box-filters first
        scale = max_side / max(image.size)
        new_size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
        image = image.resize(new_size, Image.Resampling.NEAREST)

    grid = ColorGrid(np.array(image))
    seeds = generate_initial_palette(grid, max_colors, metric)
    result = refine(grid, seeds, metric, max_iterations=max_iterations)
    return colors_to_array(result.palette).astype(np.uint8)
