"""End-to-end pipeline tests.

Tests for autoart.data_pipeline.pipeline:
    - 4x4 two-halves scenario: 2 layers of 8 px, 1 chunk and 1 action set
      of length 8 each
    - Stacked top/bottom variant: strokes of 9 points (one retraced pixel)
    - Superpixel K-Means on a quadrant image
    - Stray-pixel cleanup and simplified split change the layer set
    - Simplified drawing mode drops short strokes
    - Sequential and threaded layer planning agree
    - YAML config drives a full run
    - Degenerate inputs surface as typed errors

Run:
    pytest tests/test_pipeline.py -v
"""

import numpy as np
import pytest

from autoart.data_pipeline.chunking import find_chunks
from autoart.data_pipeline.layers import ColorLayer
from autoart.data_pipeline.pipeline import plan_layer, plan_layers, run_pipeline, split_image
from autoart.utils.errors import DegenerateInputError, InvalidConfigurationError
from autoart.utils.validators import PathConfig, PipelineConfig, SplitConfig, load_pipeline_config


def _config(**split):
    return PipelineConfig(split=SplitConfig(**split))


def test_two_halves_scenario(two_halves):
    result = run_pipeline(two_halves, _config(color_count=2, algorithm="median_cut"))

    assert len(result.layers) == 2
    assert [layer.pixel_count for layer in result.layers] == [8, 8]
    assert not (result.layers[0].mask & result.layers[1].mask).any()
    for layer, plan in zip(result.layers, result.plans):
        assert len(find_chunks(layer.mask)) == 1
        assert plan.layer is layer
        assert len(plan.action_sets) == 1
        assert len(plan.action_sets[0]) == 8
        assert plan.stats_after.total_points == 8


def test_two_halves_stacked_vertically(two_halves):
    # Top/bottom split of the same image: each layer is a 4x2 band, and its
    # DFS bridge retraces one pixel, so strokes are 9 points over 8 pixels
    stacked = np.ascontiguousarray(two_halves.transpose(1, 0, 2))
    result = run_pipeline(stacked, _config(color_count=2, algorithm="median_cut"))

    assert [layer.pixel_count for layer in result.layers] == [8, 8]
    assert [[len(a) for a in plan.action_sets] for plan in result.plans] == [[9], [9]]
    for plan in result.plans:
        assert len(set(plan.action_sets[0])) == 8
        assert plan.stats_after.total_points == 9


def test_superpixel_kmeans_quadrants(four_quadrants):
    result = run_pipeline(four_quadrants, _config(color_count=4, seed=5))
    assert len(result.layers) == 4
    assert all(layer.pixel_count == 64 for layer in result.layers)
    assert all(len(plan.action_sets) == 1 for plan in result.plans)
    for key in ("quantize", "layers", "chunking", "paths", "optimize", "total"):
        assert key in result.timings


def test_stray_pixel_removal_merges_speck():
    img = np.zeros((5, 5, 4), dtype=np.uint8)
    img[...] = (255, 0, 0, 255)
    img[2, 2] = (0, 0, 255, 255)

    plain, _, layers = split_image(img, SplitConfig(color_count=2, use_superpixels=False, seed=1))
    assert len(layers) == 2

    cleaned, counts, layers = split_image(
        img, SplitConfig(color_count=2, use_superpixels=False, seed=1, remove_stray_pixels=True)
    )
    assert len(layers) == 1
    assert list(counts.values()) == [25]


def test_simplified_split_merges_near_grays():
    img = np.zeros((6, 4, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[:, :2, :3] = (0, 0, 255)
    img[:, 2, :3] = (100, 100, 100)
    img[:, 3, :3] = (101, 101, 101)
    base = dict(color_count=3, use_superpixels=False, seed=2)

    _, _, layers = split_image(img, SplitConfig(**base))
    assert len(layers) == 3

    _, counts, layers = split_image(img, SplitConfig(simplified_split=True, **base))
    assert len(layers) == 2
    assert sorted(counts.values()) == [12, 12]


def test_simplified_drawing_mode():
    mask = np.zeros((20, 20), dtype=bool)
    mask[0, :] = True          # 20 px stroke
    mask[10, 5] = True         # speck
    layer = ColorLayer(index=0, color=(0, 0, 0), hex_color="000000", mask=mask, pixel_count=21)

    plan = plan_layer(layer, PathConfig(simplified_mode=True, min_action_set_size=5))
    assert [len(a) for a in plan.action_sets] == [20]
    assert plan.stats_before.total_action_sets == 2
    assert plan.stats_after.total_action_sets == 1


def test_threaded_planning_matches_sequential(four_quadrants):
    _, _, layers = split_image(four_quadrants, SplitConfig(color_count=4, use_superpixels=False, seed=0))
    sequential = plan_layers(layers, PathConfig(algorithm="edge_follow"), max_workers=1)
    threaded = plan_layers(layers, PathConfig(algorithm="edge_follow"), max_workers=4)
    assert [p.action_sets for p in sequential] == [p.action_sets for p in threaded]
    assert [p.layer.hex_color for p in threaded] == [layer.hex_color for layer in layers]


def test_yaml_config_run(tmp_path, two_halves):
    cfg_path = tmp_path / "pipeline.yaml"
    cfg_path.write_text(
        "schema: autoart_pipeline.v1\n"
        "split:\n"
        "  color_count: 2\n"
        "  algorithm: median_cut\n"
        "  color_space: cielab\n"
        "paths:\n"
        "  algorithm: edge_follow\n"
        "  optimizer:\n"
        "    spatial_ordering: false\n"
        "max_workers: 2\n"
    )
    result = run_pipeline(two_halves, load_pipeline_config(cfg_path))
    assert len(result.layers) == 2
    assert sum(len(a) for p in result.plans for a in p.action_sets) == 16


def test_transparent_image_rejected():
    with pytest.raises(DegenerateInputError):
        run_pipeline(np.zeros((3, 3, 4), dtype=np.uint8))


def test_too_many_colors_rejected(two_halves):
    with pytest.raises(InvalidConfigurationError):
        run_pipeline(two_halves, _config(color_count=20))
