"""
Lloyd's algorithm (k-means) over the colors of a ColorGrid.

Work is done on the grid's distinct colors weighted by their pixel counts:
every pixel of a given color lands in the same cluster, so the sums and
counts are the same as a pixel-by-pixel pass.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from cquant.color import Color, ColorGrid, Palette
from cquant.errors import InvalidArgumentError
from cquant.metrics import ColorDistanceMetric, get_metric

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 300

ColorMap = Dict[Color, Color]


@dataclass(frozen=True)
class ClusterResult:
    """
    Outcome of a refine() run.

    Attributes:
        color_map: Every distinct grid color -> the palette entry it was assigned to.
        palette: The palette color_map was built against (the final centroids).
        iterations: Number of assignment passes performed.
        converged: False when the iteration cap was hit first.
        counts: Pixels assigned to each palette index in the last pass.
    """
    color_map: ColorMap
    palette: Palette
    iterations: int
    converged: bool
    counts: Tuple[int, ...]


def assign_to_nearest(colors: np.ndarray, palette: Sequence[Sequence[int]], metric: ColorDistanceMetric) -> np.ndarray:
    """
    Index of the nearest palette entry for each row of an (N, 3) color array.
    On equal distances the lowest palette index wins.
    """
    dists = np.column_stack([metric.distances(colors, centroid) for centroid in palette])
    return np.argmin(dists, axis=1)  # argmin returns the first minimum


def check_grid(grid: Optional[ColorGrid]) -> None:
    if grid is None or grid.is_empty:
        raise InvalidArgumentError("Color grid must be non-empty.")


def refine(
    grid: ColorGrid,
    initial_palette: Sequence[Sequence[int]],
    metric=None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> ClusterResult:
    """
    Refine an initial palette with Lloyd's algorithm until no centroid moves.

    Each pass assigns every color to its nearest centroid, then moves each
    centroid that received pixels to the truncated integer mean of them.
    Centroids that received nothing keep their value, so the palette length
    never changes. Duplicate centroids are kept as they are.

    Args:
        grid (ColorGrid): Pixels to cluster.
        initial_palette (sequence of colors): Starting centroids, length K >= 1.
        metric: Metric instance or name, see metrics.get_metric(). Default squared-euclidean.
        max_iterations (int): Upper bound on assignment passes.

    Returns:
        ClusterResult: The map and palette of the last pass. If the cap is hit
        before convergence, converged is False and the map still refers only
        to colors of the returned palette.
    """
    check_grid(grid)
    if initial_palette is None or len(initial_palette) == 0:
        raise InvalidArgumentError("Initial palette must contain at least one color.")
    if max_iterations < 1:
        raise InvalidArgumentError(f"max_iterations must be >= 1, got {max_iterations}.")
    metric = get_metric(metric)

    colors, pixel_counts = grid.unique_colors()
    weighted = colors * pixel_counts[:, None]
    centroids: List[Color] = [Color.from_array(c) for c in initial_palette]
    k = len(centroids)

    for iteration in range(1, max_iterations + 1):
        labels = assign_to_nearest(colors, centroids, metric)

        counts = np.zeros(k, dtype=np.int64)
        sums = np.zeros((k, 3), dtype=np.int64)
        np.add.at(counts, labels, pixel_counts)
        np.add.at(sums, labels, weighted)

        color_map: ColorMap = {Color.from_array(c): centroids[i] for c, i in zip(colors, labels)}

        new_centroids: List[Color] = []
        changed = 0
        for i, centroid in enumerate(centroids):
            if counts[i] > 0:
                # channel sums are non-negative, floor division truncates
                updated = Color.from_array(sums[i] // counts[i])
                if updated != centroid:
                    changed += 1
                new_centroids.append(updated)
            else:
                new_centroids.append(centroid)

        logger.debug("Iteration %d: %d of %d centroids moved", iteration, changed, k)

        if not changed:
            logger.info("Converged after %d iteration(s) with %d colors", iteration, k)
            return ClusterResult(color_map, centroids, iteration, True, tuple(int(n) for n in counts))

        last = (color_map, centroids, counts)
        centroids = new_centroids

    color_map, assigned_palette, counts = last
    logger.warning(
        "Palette did not converge within %d iterations; returning the last assignment.", max_iterations
    )
    return ClusterResult(color_map, assigned_palette, max_iterations, False, tuple(int(n) for n in counts))
