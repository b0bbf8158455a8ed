"""Test the action-set optimizer.

Tests for autoart.data_pipeline.optimizer:
    - Disabled optimizer / empty input pass through
    - Too few small sets: only spatial ordering applies
    - Clusters of small sets merge into connected components only
    - Undersized clusters stay as they were
    - Greedy nearest-neighbour walk starts top-left
    - Serpentine band ordering
    - Idempotence without spatial ordering; determinism
    - Statistics and simplified-mode discarding

Run:
    pytest tests/test_optimizer.py -v
"""

import numpy as np
import pytest

from autoart.data_pipeline.optimizer import (
    analyze_action_sets,
    cluster_by_proximity,
    discard_small_action_sets,
    nearest_neighbour_path,
    optimize_action_sets,
    sort_spatially,
)
from autoart.utils.validators import OptimizerConfig


def _points(actions):
    return {p for a in actions for p in a}


def _line(x0, y, n):
    return [(x0 + i, y) for i in range(n)]


@pytest.fixture
def unordered():
    return OptimizerConfig(spatial_ordering=False)


@pytest.fixture
def speckles():
    """Many single-pixel and tiny sets scattered over a 60x60 area, plus strokes."""
    rng = np.random.default_rng(8)
    actions = [_line(0, 0, 20), _line(0, 55, 15)]
    for _ in range(40):
        x, y = rng.integers(0, 60, size=2).tolist()
        actions.append([(x, y)])
    actions.append([(30, 30), (31, 30)])
    actions.append([(32, 31)])
    return actions


def test_disabled_is_identity(speckles):
    out = optimize_action_sets(speckles, OptimizerConfig(enabled=False))
    assert out == speckles


def test_empty_input():
    assert optimize_action_sets([]) == []


def test_few_small_sets_only_reordered():
    top = _line(0, 0, 12)
    bottom = _line(0, 100, 12)
    out = optimize_action_sets([bottom, top, [(50, 50)]])
    assert len(out) == 3
    assert out[0] == top


def test_touching_sets_merge(unordered):
    actions = [[(0, 0)], [(1, 0)], [(2, 1)], [(10, 10)]]
    out = optimize_action_sets(actions, unordered)
    assert out == [[(0, 0), (1, 0), (2, 1)], [(10, 10)]]


def test_disconnected_dots_never_joined(unordered):
    actions = [[(0, 0)], [(3, 0)], [(6, 0)], [(9, 0)]]
    out = optimize_action_sets(actions, unordered)
    assert sorted(out) == sorted(actions)


def test_undersized_cluster_kept(unordered):
    near = [[(0, 0)], [(1, 0)], [(1, 1)]]
    far = [[(200, 200)], [(201, 200)]]
    large = [_line(0, 50, 15)]
    out = optimize_action_sets(large + far + near, unordered)
    # Large sets first, then small sets of undersized clusters, then merged sets
    assert out == large + far + [[(0, 0), (1, 0), (1, 1)]]


def test_points_preserved(speckles):
    out = optimize_action_sets(speckles)
    assert _points(out) == _points(speckles)


def test_merged_components_are_connected(speckles):
    cfg = OptimizerConfig(spatial_ordering=False)
    out = optimize_action_sets(speckles, cfg)
    merged = out[2:]
    for action in merged:
        if len(action) < 2:
            continue
        coords = np.asarray(action, dtype=float)
        d = np.sqrt(((coords[:, None] - coords[None]) ** 2).sum(-1))
        np.fill_diagonal(d, np.inf)
        assert (d.min(axis=1) <= 1.5).all()


def test_idempotent_without_spatial_ordering(speckles, unordered):
    once = optimize_action_sets(speckles, unordered)
    twice = optimize_action_sets(once, unordered)
    assert len(twice) == len(once)
    assert _points(twice) == _points(once)


def test_deterministic(speckles):
    assert optimize_action_sets(speckles) == optimize_action_sets(list(speckles))


def test_cluster_by_proximity_transitive():
    centroids = np.array([[0.0, 0.0], [20.0, 0.0], [40.0, 0.0], [200.0, 0.0]])
    assert cluster_by_proximity(centroids, 25.0) == [[0, 1, 2], [3]]


def test_nearest_neighbour_starts_top_left():
    path = nearest_neighbour_path([(5, 5), (1, 0), (0, 0), (2, 0)])
    assert path == [(0, 0), (1, 0), (2, 0), (5, 5)]


def test_serpentine_order():
    a, b = [(10, 0)], [(50, 0)]
    c, d = [(10, 40)], [(50, 40)]
    assert sort_spatially([d, c, b, a]) == [a, b, d, c]


def test_single_band_left_to_right():
    sets = [[(30, 5)], [(10, 0)], [(20, 10)]]
    assert sort_spatially(sets) == [[(10, 0)], [(20, 10)], [(30, 5)]]


def test_analyze_action_sets():
    stats = analyze_action_sets([[(0, 0)], _line(0, 1, 5), _line(0, 2, 20)], small_set_threshold=10)
    assert stats.total_action_sets == 3
    assert stats.total_points == 26
    assert stats.small_action_sets == 2
    assert stats.large_action_sets == 1
    assert (stats.min_set_size, stats.max_set_size) == (1, 20)
    assert stats.average_set_size == pytest.approx(26 / 3)
    assert "Small: 2" in str(stats)


def test_analyze_empty():
    stats = analyze_action_sets([])
    assert stats.total_action_sets == 0 and stats.average_set_size == 0.0


def test_discard_small_action_sets():
    actions = [_line(0, 0, 100), _line(0, 1, 99), _line(0, 2, 150)]
    kept = discard_small_action_sets(actions)
    assert [len(a) for a in kept] == [100, 150]
    assert discard_small_action_sets(actions, min_size=1) == actions
