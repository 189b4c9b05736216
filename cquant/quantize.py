import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np
from PIL import Image

from cquant import file_utils
from cquant.cluster import ClusterResult, ColorMap, DEFAULT_MAX_ITERATIONS, refine
from cquant.color import ColorGrid, Palette, colors_to_array, pack_rgb
from cquant.errors import InvalidArgumentError
from cquant.metrics import get_metric
from cquant.palette_tools import apply_color_map, generate_initial_palette, map_grid_to_palette

logger = logging.getLogger(__name__)

DEFAULT_NUM_COLORS = 5


class ColorQuantizer:
    """
    Reduces a ColorGrid to a small palette: farthest-point seeding followed
    by k-means refinement under the chosen metric.

    The grid is only read. Each quantize_* call runs the clustering again,
    use cluster() once and apply_color_map() when several outputs are needed.
    """

    def __init__(self, grid: ColorGrid, metric=None, max_iterations: int = DEFAULT_MAX_ITERATIONS):
        if grid is None:
            raise InvalidArgumentError("A color grid is required.")
        if max_iterations < 1:
            raise InvalidArgumentError(f"max_iterations must be >= 1, got {max_iterations}.")
        self.grid = grid
        self.metric = get_metric(metric)
        self.max_iterations = max_iterations

    @classmethod
    def from_file(cls, path: Union[str, Path], metric=None, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> "ColorQuantizer":
        return cls(file_utils.load_color_grid(path), metric=metric, max_iterations=max_iterations)

    def initial_palette(self, num_colors: int = DEFAULT_NUM_COLORS) -> Palette:
        return generate_initial_palette(self.grid, num_colors, self.metric)

    def cluster(self, num_colors: int = DEFAULT_NUM_COLORS) -> ClusterResult:
        """Seed and refine a palette of num_colors colors, returning the full result."""
        result = refine(self.grid, self.initial_palette(num_colors), self.metric, self.max_iterations)
        logger.debug(
            "%d colors (%s): %d iteration(s), converged=%s",
            num_colors, self.metric.name.value, result.iterations, result.converged,
        )
        return result

    def quantize_colors(self, num_colors: int = DEFAULT_NUM_COLORS) -> ColorMap:
        """Map of every distinct color in the grid to its palette color."""
        return self.cluster(num_colors).color_map

    def quantize_to_grid(self, num_colors: int = DEFAULT_NUM_COLORS) -> ColorGrid:
        """Grid of the same dimensions with every pixel replaced by its palette color."""
        return apply_color_map(self.grid, self.quantize_colors(num_colors))

    def quantize_to_image(self, num_colors: int = DEFAULT_NUM_COLORS) -> Image.Image:
        return file_utils.grid_to_image(self.quantize_to_grid(num_colors))

    def quantize_to_file(
        self,
        output_path: Union[str, Path],
        num_colors: int = DEFAULT_NUM_COLORS,
        command_line_invocation: Optional[str] = None,
        additional_metadata: Optional[Dict[str, str]] = None,
    ) -> Path:
        """
        Quantize and write the result to output_path. The image format follows
        the suffix (.png, .bmp, ...); PNGs also record how they were made.
        """
        result = self.cluster(num_colors)
        image = file_utils.grid_to_image(apply_color_map(self.grid, result.color_map))
        metadata = {
            "Metric": self.metric.name.value,
            "NumColors": str(num_colors),
            "Iterations": str(result.iterations),
            "Converged": str(result.converged),
            "Palette": " ".join(color.hex for color in result.palette),
        }
        if additional_metadata:
            metadata.update(additional_metadata)
        return file_utils.save_quantized_image(image, output_path, command_line_invocation, metadata)


def _sort_palette_by_frequency(
    palette: np.ndarray, counts: np.ndarray, drop_unused: bool
) -> np.ndarray:
    order = np.argsort(-counts, kind="stable")  # most used first, ties keep palette order
    sorted_palette = palette[order]
    if drop_unused:
        used = sorted_palette[counts[order] > 0]
        if len(used) > 0:
            return used
    return sorted_palette


def quantize_image(
    input_path: Union[str, Path],
    num_colors: Optional[int] = None,
    fixed_palette: Optional[np.ndarray] = None,
    metric=None,
    sort_by_frequency: bool = True,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Tuple[Image.Image, np.ndarray]:
    """
    Quantize an image file with an adaptive palette or onto a fixed one.

    Args:
        input_path (str): Path to the input image file.
        num_colors (int, optional): Palette size for the adaptive palette. Ignored
                                    if fixed_palette is used. Defaults to 5.
        fixed_palette (np.ndarray, optional): Pre-extracted RGB palette (shape [N, 3]).
        metric: Metric instance or name. Default squared-euclidean.
        sort_by_frequency (bool): If True, sorts the returned palette by pixel count
                                  (most frequent first). Colors of a fixed palette
                                  that no pixel uses are dropped.
        max_iterations (int): Cap on refinement passes.

    Returns:
        Tuple[PIL.Image.Image, np.ndarray]:
            - The quantized image (RGB mode).
            - Array of RGB palette colors (uint8, shape [M, 3]).
    """
    grid = file_utils.load_color_grid(input_path)

    if fixed_palette is not None:
        fixed_palette = np.asarray(fixed_palette)
        if fixed_palette.ndim != 2 or fixed_palette.shape[1] != 3:
            raise InvalidArgumentError("fixed_palette must be an array of shape [N, 3].")
        palette = colors_to_array(fixed_palette)
        quantized = map_grid_to_palette(grid, palette, metric)
        # count pixels per palette entry; duplicate entries share the count of the first one
        used_colors, used_counts = quantized.unique_colors()
        count_by_packed = dict(zip(pack_rgb(used_colors).tolist(), used_counts.tolist()))
        counts = np.zeros(len(palette), dtype=np.int64)
        seen = set()
        for i, packed in enumerate(pack_rgb(palette).tolist()):
            if packed not in seen:
                counts[i] = count_by_packed.get(packed, 0)
                seen.add(packed)
    else:
        if num_colors is None:
            num_colors = DEFAULT_NUM_COLORS
        quantizer = ColorQuantizer(grid, metric=metric, max_iterations=max_iterations)
        result = quantizer.cluster(num_colors)
        quantized = apply_color_map(grid, result.color_map)
        palette = colors_to_array(result.palette)
        counts = np.array(result.counts, dtype=np.int64)

    if sort_by_frequency:
        palette = _sort_palette_by_frequency(palette, counts, drop_unused=fixed_palette is not None)

    return file_utils.grid_to_image(quantized), palette.astype(np.uint8)
