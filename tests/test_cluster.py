# tests/test_cluster.py
import logging

import numpy as np
import pytest
from cquant.cluster import refine
from cquant.color import Color, ColorGrid
from cquant.errors import InvalidArgumentError
from cquant.palette_tools import generate_initial_palette

BLACK = Color(0, 0, 0)
WHITE = Color(255, 255, 255)


@pytest.fixture
def two_tone_grid():
    return ColorGrid.from_rows([
        [BLACK, BLACK],
        [WHITE, WHITE],
    ])


@pytest.fixture
def random_grid():
    rng = np.random.default_rng(1234)
    return ColorGrid(rng.integers(0, 256, size=(12, 9, 3)))


def test_two_tone_converges_in_one_iteration(two_tone_grid):
    result = refine(two_tone_grid, [BLACK, WHITE], "squared-euclidean")
    assert result.converged
    assert result.iterations == 1
    assert result.palette == [BLACK, WHITE]
    assert result.color_map == {BLACK: BLACK, WHITE: WHITE}
    assert result.counts == (2, 2)


def test_single_centroid_is_truncated_mean():
    grid = ColorGrid.from_rows([
        [(10, 20, 30), (11, 21, 31)],
        [(0, 0, 0), (100, 1, 2)],
    ])
    result = refine(grid, [grid[0, 0]])
    # (121/4, 42/4, 63/4) truncated
    assert result.palette == [Color(30, 10, 15)]
    assert set(result.color_map.values()) == {Color(30, 10, 15)}
    assert len(result.color_map) == 4
    assert result.converged
    assert result.iterations == 2


def test_refining_a_converged_palette_changes_nothing(random_grid):
    first = refine(random_grid, generate_initial_palette(random_grid, 4))
    assert first.converged
    second = refine(random_grid, first.palette)
    assert second.iterations == 1
    assert second.converged
    assert second.palette == first.palette


def test_refining_a_converged_hue_palette_changes_nothing():
    grid = ColorGrid.from_rows([
        [(255, 0, 0), (100, 0, 0), (0, 255, 0)],
        [(0, 0, 200), (0, 10, 180), (240, 20, 0)],
    ])
    first = refine(grid, generate_initial_palette(grid, 3, "circular-hue"), "circular-hue")
    assert first.converged
    second = refine(grid, first.palette, "circular-hue")
    assert second.iterations == 1
    assert second.palette == first.palette


@pytest.mark.parametrize("metric", ["squared-euclidean", "circular-hue"])
def test_runs_are_deterministic(random_grid, metric):
    runs = []
    for _ in range(2):
        seeds = generate_initial_palette(random_grid, 5, metric)
        runs.append(refine(random_grid, seeds, metric))
    assert runs[0].palette == runs[1].palette
    assert list(runs[0].color_map.items()) == list(runs[1].color_map.items())


def test_every_grid_color_is_mapped_into_the_palette(random_grid):
    result = refine(random_grid, generate_initial_palette(random_grid, 6))
    colors, _ = random_grid.unique_colors()
    assert set(result.color_map) == {Color.from_array(c) for c in colors}
    assert set(result.color_map.values()) <= set(result.palette)


def test_empty_clusters_keep_their_centroid():
    grid = ColorGrid([[(50, 50, 50)] * 4] * 4)
    initial = [Color(50, 50, 50), Color(255, 0, 0), Color(0, 0, 255)]
    result = refine(grid, initial)
    assert len(result.palette) == 3
    assert result.palette == initial
    assert result.counts == (16, 0, 0)
    assert result.iterations == 1


def test_palette_size_is_kept_with_duplicate_seeds():
    grid = ColorGrid([[(50, 50, 50)] * 4] * 4)
    seeds = generate_initial_palette(grid, 4)
    assert seeds == [Color(50, 50, 50)] * 4
    result = refine(grid, seeds)
    assert len(result.palette) == 4
    assert result.counts == (16, 0, 0, 0)


def test_duplicate_centroids_are_accumulated_by_index(two_tone_grid):
    # Both pixels colors tie on the duplicates and go to index 0 first;
    # index 1 keeps its value and picks up the black pixels next round.
    result = refine(two_tone_grid, [BLACK, BLACK])
    assert result.converged
    assert result.iterations == 3
    assert result.palette == [WHITE, BLACK]
    assert result.color_map == {BLACK: BLACK, WHITE: WHITE}


def test_hue_metric_clusters_by_hue():
    grid = ColorGrid.from_rows([[(255, 0, 0), (100, 0, 0), (0, 255, 0)]])
    seeds = generate_initial_palette(grid, 2, "circular-hue")
    assert seeds == [Color(255, 0, 0), Color(0, 255, 0)]
    result = refine(grid, seeds, "circular-hue")
    assert result.palette == [Color(177, 0, 0), Color(0, 255, 0)]
    assert result.color_map[Color(100, 0, 0)] == Color(177, 0, 0)
    assert result.iterations == 2


def test_iteration_cap_returns_last_assignment(caplog):
    grid = ColorGrid.from_rows([
        [(10, 20, 30), (11, 21, 31)],
        [(0, 0, 0), (100, 1, 2)],
    ])
    with caplog.at_level(logging.WARNING, logger="cquant.cluster"):
        result = refine(grid, [Color(10, 20, 30)], max_iterations=1)
    assert not result.converged
    assert result.iterations == 1
    # the map refers to the palette it was built against
    assert result.palette == [Color(10, 20, 30)]
    assert set(result.color_map.values()) == {Color(10, 20, 30)}
    assert "did not converge" in caplog.text


@pytest.mark.parametrize("grid, palette, kwargs", [
    (None, [BLACK], {}),
    (ColorGrid([]), [BLACK], {}),
    (ColorGrid([[(1, 2, 3)]]), [], {}),
    (ColorGrid([[(1, 2, 3)]]), None, {}),
    (ColorGrid([[(1, 2, 3)]]), [BLACK], {"max_iterations": 0}),
])
def test_invalid_arguments(grid, palette, kwargs):
    with pytest.raises(InvalidArgumentError):
        refine(grid, palette, **kwargs)


def test_invalid_argument_is_a_value_error():
    with pytest.raises(ValueError):
        refine(None, [BLACK])
