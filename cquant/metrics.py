"""
Color distance metrics used by the palette initializer and the cluster refiner.

Metrics carry no state; get_metric() hands out shared instances.
"""
from enum import Enum
from typing import Dict, Sequence, Union

import numpy as np

from cquant.color import Color, hues
from cquant.errors import InvalidArgumentError


class MetricName(str, Enum):
    SQUARED_EUCLIDEAN = "squared-euclidean"
    CIRCULAR_HUE = "circular-hue"


def circular_hue_difference(h1: float, h2: float) -> float:
    """Angular distance between two hues in degrees, in [0, 180]. (350, 10) -> 20."""
    cw_distance = abs(h1 - h2)
    return min(cw_distance, 360.0 - cw_distance)


class ColorDistanceMetric:
    """
    Interface for a symmetric, non-negative dissimilarity between two colors.

    distance() compares two single colors. distances() is the vectorised form
    the clustering code uses; it must return exactly what distance() would
    for each row so that ties are resolved identically either way.
    """
    name: MetricName

    def distance(self, a: Sequence[int], b: Sequence[int]) -> float:
        raise NotImplementedError

    def distances(self, colors: np.ndarray, color: Sequence[int]) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SquaredEuclideanMetric(ColorDistanceMetric):
    """Sum of squared per-channel differences. No square root: only used for ranking."""
    name = MetricName.SQUARED_EUCLIDEAN

    def distance(self, a, b) -> float:
        r_diff = int(a[0]) - int(b[0])
        g_diff = int(a[1]) - int(b[1])
        b_diff = int(a[2]) - int(b[2])
        return float(r_diff * r_diff + g_diff * g_diff + b_diff * b_diff)

    def distances(self, colors, color) -> np.ndarray:
        diff = np.asarray(colors, dtype=np.int64).reshape(-1, 3) - np.asarray(color, dtype=np.int64)
        # Exact in int64, converted afterwards so comparisons never see rounding
        return (diff * diff).sum(axis=1).astype(np.float64)


class CircularHueMetric(ColorDistanceMetric):
    """
    Distance between hue angles on the color wheel, 0 deg adjacent to 360 deg.

    Colors sharing a hue are at distance 0 whatever their saturation or
    brightness; grays all have hue 0.
    """
    name = MetricName.CIRCULAR_HUE

    def distance(self, a, b) -> float:
        return circular_hue_difference(Color.from_array(a).hue, Color.from_array(b).hue)

    def distances(self, colors, color) -> np.ndarray:
        cw_distance = np.abs(hues(colors) - Color.from_array(color).hue)
        return np.minimum(cw_distance, 360.0 - cw_distance)


_METRICS: Dict[MetricName, ColorDistanceMetric] = {
    MetricName.SQUARED_EUCLIDEAN: SquaredEuclideanMetric(),
    MetricName.CIRCULAR_HUE: CircularHueMetric(),
}


def get_metric(metric: Union[str, MetricName, ColorDistanceMetric, None] = None) -> ColorDistanceMetric:
    """
    Resolve a metric name (or enum member) to its shared instance.
    Metric instances pass through unchanged; None gives squared-euclidean.
    """
    if metric is None:
        return _METRICS[MetricName.SQUARED_EUCLIDEAN]
    if isinstance(metric, ColorDistanceMetric):
        return metric
    try:
        return _METRICS[MetricName(metric)]
    except ValueError:
        valid = ", ".join(m.value for m in MetricName)
        raise InvalidArgumentError(f"Unknown metric '{metric}'. Expected one of: {valid}.") from None
